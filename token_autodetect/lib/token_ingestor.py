"""
Turning fetch outcomes into token store changes.
"""

import logging
from concurrent.futures import Future
from typing import Callable, Optional

from .contract_data import ContractDataFetcher
from .models import (
    NATIVE_CURRENCY_CONTRACT,
    DelegateComplete,
    Failed,
    FetchOutcome,
    FungibleComplete,
    IngestAction,
    NonFungibleComplete,
    TokenRecord,
    parse_address,
    same_contract,
)
from .token_store import TokensDataStore

logger = logging.getLogger(__name__)

IngestCallback = Callable[[IngestAction], None]


class TokenIngestor:
    """
    Decides whether a fetched contract is added, recorded as a delegate or
    dead contract, or left alone.
    """

    def __init__(self, store: TokensDataStore, fetcher: ContractDataFetcher, network: str):
        self.store = store
        self.fetcher = fetcher
        self.network = network

    def ingest(
        self,
        address: str,
        outcome: FetchOutcome,
        completion: Optional[IngestCallback] = None,
    ) -> IngestAction:
        """
        Apply a fetch outcome to the store.

        Failures are recorded as dead contracts only when the network was
        affirmatively reachable; an offline failure leaves no trace so the
        contract is retried on the next pass.

        Args:
            address: Contract address
            outcome: Result of fetch_contract_data for the contract
            completion: Called with the action taken, whatever the outcome

        Returns:
            The action taken
        """
        action = self._apply(address, outcome)
        logger.debug("Ingested %s: %s", address, action.value)
        if completion is not None:
            completion(action)
        return action

    def _apply(self, address: str, outcome: FetchOutcome) -> IngestAction:
        if isinstance(outcome, NonFungibleComplete):
            contract = parse_address(address)
            if contract is None:
                return IngestAction.IGNORED
            self.store.add_token(
                TokenRecord.non_fungible(
                    contract=contract,
                    network=self.network,
                    name=outcome.name,
                    symbol=outcome.symbol,
                    balance=outcome.balance,
                    standard=outcome.standard,
                )
            )
            return IngestAction.ADDED

        if isinstance(outcome, FungibleComplete):
            contract = parse_address(address)
            if contract is None:
                return IngestAction.IGNORED
            self.store.add_token(
                TokenRecord.fungible(
                    contract=contract,
                    network=self.network,
                    name=outcome.name,
                    symbol=outcome.symbol,
                    decimals=outcome.decimals,
                )
            )
            return IngestAction.ADDED

        if isinstance(outcome, DelegateComplete):
            self.store.add_delegate(address)
            return IngestAction.DELEGATE

        if isinstance(outcome, Failed) and outcome.network_reachable is True:
            self.store.add_deleted_contract(address)
            return IngestAction.DEAD

        return IngestAction.IGNORED

    def add_token(self, address: str) -> "Future[IngestAction]":
        """
        Fetch a contract's data and ingest the outcome.

        The native currency address resolves to IGNORED without a fetch.

        Returns:
            Future resolved with the action taken once ingestion is done
        """
        result: "Future[IngestAction]" = Future()
        if same_contract(address, NATIVE_CURRENCY_CONTRACT):
            result.set_result(IngestAction.IGNORED)
            return result

        def on_outcome(outcome_future: "Future[FetchOutcome]") -> None:
            try:
                result.set_result(self.ingest(address, outcome_future.result()))
            except Exception as e:
                logger.exception("Ingesting %s failed", address)
                result.set_exception(e)

        self.fetcher.fetch_contract_data(address).add_done_callback(on_outcome)
        return result
