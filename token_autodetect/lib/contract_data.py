"""
Fetching and merging a contract's token data.

For one contract, name, symbol and classification run concurrently; the
classification is followed by the balance or decimals read its standard
needs. Fields are merged as they arrive and exactly one FetchOutcome is
delivered: when every field the standard requires is present, or at the
first failed read.
"""

import functools
import logging
import threading
from concurrent.futures import Executor, Future
from typing import Callable, Optional

from .asset_definitions import AssetDefinitionStore
from .chain_client import ChainAPIError
from .models import (
    Balance,
    ClassifiedField,
    Decimals,
    DelegateComplete,
    Failed,
    FetchOutcome,
    FungibleComplete,
    Name,
    NonFungibleComplete,
    Symbol,
    TokenStandard,
)
from .reachability import ReachabilityProbe
from .token_store import TokensDataStore

logger = logging.getLogger(__name__)

FieldCallback = Callable[[ClassifiedField], None]


def _log_asset_definition_error(address: str, future: "Future") -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error(
            "Asset definition fetch for %s failed",
            address,
            exc_info=(type(error), error, error.__traceback__),
        )


class _ContractDataMerge:
    """Field accumulator for one fetch. Resolves its future at most once."""

    def __init__(
        self,
        address: str,
        is_reachable: ReachabilityProbe,
        on_field: Optional[FieldCallback],
    ):
        self.address = address
        self.is_reachable = is_reachable
        self.on_field = on_field
        self.future: "Future[FetchOutcome]" = Future()
        self._lock = threading.Lock()
        self._done = False
        self._name: Optional[str] = None
        self._symbol: Optional[str] = None
        self._balance = None
        self._decimals: Optional[int] = None
        self._standard: Optional[TokenStandard] = None

    def arrived(self, field: ClassifiedField, standard: Optional[TokenStandard] = None) -> None:
        with self._lock:
            if isinstance(field, Name):
                self._name = field.value
            elif isinstance(field, Symbol):
                self._symbol = field.value
            elif isinstance(field, Balance):
                self._balance = field.value
                self._standard = standard
            elif isinstance(field, Decimals):
                self._decimals = field.value

        if self.on_field is not None:
            self.on_field(field)

        with self._lock:
            if self._done:
                return
            complete = self._complete_outcome()
            if complete is None:
                return
            self._done = True

        self._resolve(complete)

    def failed(self) -> None:
        with self._lock:
            if self._done:
                return
            self._done = True
        self.future.set_result(Failed(network_reachable=self.is_reachable()))

    def _complete_outcome(self) -> Optional[FetchOutcome]:
        # Called with the lock held. An empty symbol is resolved later by _resolve.
        if self._name is None or self._symbol is None:
            return None
        if self._balance is not None and self._standard is not None:
            return NonFungibleComplete(
                name=self._name,
                symbol=self._symbol,
                balance=list(self._balance),
                standard=self._standard,
            )
        if self._decimals is not None:
            return FungibleComplete(name=self._name, symbol=self._symbol, decimals=self._decimals)
        return None

    def _resolve(self, complete: FetchOutcome) -> None:
        if complete.symbol:
            self.future.set_result(complete)
            return

        # No connectivity also reads back as an empty symbol.
        reachable = self.is_reachable()
        if reachable:
            self.future.set_result(DelegateComplete())
        else:
            self.future.set_result(Failed(network_reachable=reachable))


class ContractDataFetcher:
    """Runs the concurrent field fetches for contracts and merges their results."""

    def __init__(
        self,
        store: TokensDataStore,
        executor: Executor,
        is_reachable: ReachabilityProbe,
        asset_definitions: Optional[AssetDefinitionStore] = None,
    ):
        """
        Args:
            store: Store providing classification and on-chain reads
            executor: Worker pool the field fetches run on
            is_reachable: Reachability probe sampled when a fetch fails
            asset_definitions: Asset definition store refreshed for each contract
        """
        self.store = store
        self.executor = executor
        self.is_reachable = is_reachable
        self.asset_definitions = asset_definitions

    def fetch_contract_data(
        self, address: str, on_field: Optional[FieldCallback] = None
    ) -> "Future[FetchOutcome]":
        """
        Fetch a contract's name, symbol and balance or decimals.

        Args:
            address: Contract address
            on_field: Called with each field as it arrives

        Returns:
            Future resolved with exactly one FetchOutcome. It never raises;
            read failures resolve it with Failed. The native currency needs
            no fields and its future is never resolved.
        """
        merge = _ContractDataMerge(address, self.is_reachable, on_field)

        if self.asset_definitions is not None:
            self.executor.submit(self.asset_definitions.fetch_xml, address).add_done_callback(
                functools.partial(_log_asset_definition_error, address)
            )

        self.executor.submit(self._run, merge, self._fetch_name)
        self.executor.submit(self._run, merge, self._fetch_symbol)
        self.executor.submit(self._run, merge, self._fetch_by_standard)
        return merge.future

    def _run(self, merge: _ContractDataMerge, fetch: Callable[[_ContractDataMerge], None]) -> None:
        try:
            fetch(merge)
        except ChainAPIError as e:
            logger.debug("Fetch for %s failed: %s", merge.address, e)
            merge.failed()
        except Exception:
            logger.exception("Unexpected error fetching data for %s", merge.address)
            merge.failed()

    def _fetch_name(self, merge: _ContractDataMerge) -> None:
        merge.arrived(Name(self.store.get_name(merge.address)))

    def _fetch_symbol(self, merge: _ContractDataMerge) -> None:
        merge.arrived(Symbol(self.store.get_symbol(merge.address)))

    def _fetch_by_standard(self, merge: _ContractDataMerge) -> None:
        standard = self.store.classify(merge.address)
        if standard is TokenStandard.NATIVE_CURRENCY:
            return
        if standard.uses_balance:
            balance = self.store.get_balance(standard, merge.address)
            merge.arrived(Balance(list(balance)), standard)
        else:
            # Unclassified contracts are read as ERC20; a contract without
            # decimals() ends up as a failed fetch.
            merge.arrived(Decimals(self.store.get_decimals(merge.address)))
