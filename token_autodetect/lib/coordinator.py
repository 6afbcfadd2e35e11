"""
Token coordinator for one wallet session on one network.

Wires the store, fetcher, ingestor and both detectors together, owns their
worker pools, and tells registered listeners when the token list changed.
"""

import logging
import threading
import weakref
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Sequence

from .asset_definitions import AssetDefinitionStore
from .chain_client import ChainClient
from .config import DetectionConfig
from .contract_data import ContractDataFetcher
from .detectors import PartnerTokenDetector, TransactedTokenDetector, WalletProvider
from .models import DetectionReport, IngestAction, TokenRecord
from .partner_contracts import PartnerContract, partner_contracts_for
from .reachability import NetworkReachability, ReachabilityProbe
from .single_flight import SingleFlightGate
from .token_ingestor import TokenIngestor
from .token_store import TokensDataStore

logger = logging.getLogger(__name__)

TokensChangedListener = Callable[[], None]


class TokenCoordinator:
    """
    Entry point for token auto-detection and token list changes.

    Listeners are held by weak reference: keep a reference to a listener for
    as long as it should be called.
    """

    def __init__(
        self,
        client: ChainClient,
        store: TokensDataStore,
        config: DetectionConfig,
        wallet_provider: WalletProvider,
        reachability: Optional[ReachabilityProbe] = None,
        asset_definitions: Optional[AssetDefinitionStore] = None,
        partner_contracts: Optional[Dict[str, Sequence[PartnerContract]]] = None,
    ):
        """
        Args:
            client: Chain client, also used to list contracts a wallet transacted with
            store: Token store for the session's wallet and network
            config: Detection configuration
            wallet_provider: Returns the session's current wallet address
            reachability: Reachability probe; a NetworkReachability by default
            asset_definitions: Asset definition store; a new one by default
            partner_contracts: Curated lists by network replacing the built-in ones
        """
        self.client = client
        self.store = store
        self.config = config
        self.wallet_provider = wallet_provider
        self.reachability = reachability or NetworkReachability(config.reachability_url)
        self.asset_definitions = asset_definitions or AssetDefinitionStore(
            config.asset_definition_repo_url
        )
        self.partner_contracts = partner_contracts

        self._listeners: List[weakref.ref] = []
        self._listeners_lock = threading.Lock()
        self._subscribed_to_asset_definitions = False

        self.fetch_executor = ThreadPoolExecutor(
            max_workers=config.max_workers, thread_name_prefix="contract-fetch"
        )
        self.transacted_queue = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="detect-transacted"
        )
        self.partner_queue = ThreadPoolExecutor(max_workers=1, thread_name_prefix="detect-partner")

        self.fetcher = ContractDataFetcher(
            store, self.fetch_executor, self.reachability, self.asset_definitions
        )
        self.ingestor = TokenIngestor(store, self.fetcher, store.network)
        self.transacted_detector = TransactedTokenDetector(
            store=store,
            lister=client,
            ingestor=self.ingestor,
            notify=self.tokens_did_change,
            wallet_provider=wallet_provider,
            config=config,
            queue=self.transacted_queue,
            fetch_executor=self.fetch_executor,
            gate=SingleFlightGate("transacted"),
        )
        self.partner_detector = PartnerTokenDetector(
            store=store,
            ingestor=self.ingestor,
            notify=self.tokens_did_change,
            config=config,
            queue=self.partner_queue,
            fetch_executor=self.fetch_executor,
            gate=SingleFlightGate("partner"),
        )

    # Listeners

    def add_listener(self, listener: TokensChangedListener) -> None:
        if hasattr(listener, "__self__"):
            ref = weakref.WeakMethod(listener)
        else:
            ref = weakref.ref(listener)
        with self._listeners_lock:
            self._listeners.append(ref)

    def remove_listener(self, listener: TokensChangedListener) -> None:
        with self._listeners_lock:
            self._listeners = [ref for ref in self._listeners if ref() not in (None, listener)]

    def tokens_did_change(self) -> None:
        """Call every live listener, dropping the ones that were collected."""
        with self._listeners_lock:
            live = [(ref, ref()) for ref in self._listeners]
            self._listeners = [ref for ref, listener in live if listener is not None]
        for _, listener in live:
            if listener is not None:
                listener()

    # Detection

    def start_auto_detection(self, wallet: Optional[str] = None) -> List["Future[DetectionReport]"]:
        """
        Start transacted and partner token detection for a wallet.

        Args:
            wallet: Wallet address; the session's current wallet by default

        Returns:
            Futures of the passes that were started
        """
        self._subscribe_to_asset_definitions()

        wallet = wallet or self.wallet_provider()
        if not wallet:
            return []

        passes = [
            self.transacted_detector.run(wallet),
            self.detect_partner_tokens(wallet),
        ]
        return [future for future in passes if future is not None]

    def detect_partner_tokens(self, wallet: str) -> Optional["Future[DetectionReport]"]:
        """Check the network's curated contracts; None if the network has none."""
        contracts = partner_contracts_for(self.store.network, self.partner_contracts)
        if not contracts:
            return None
        return self.partner_detector.run(wallet, contracts)

    def _subscribe_to_asset_definitions(self) -> None:
        with self._listeners_lock:
            if self._subscribed_to_asset_definitions:
                return
            self._subscribed_to_asset_definitions = True
        self.asset_definitions.subscribe(self._asset_definition_changed)

    def _asset_definition_changed(self, contract: str) -> None:
        if self.store.refresh_empty_non_fungible_names():
            self.tokens_did_change()

    # Token list changes

    def add_imported_token(self, contract: str) -> "Future[IngestAction]":
        """
        Add a contract the user imported.

        The contract is removed from the hidden set first, so that if this
        fetch fails (e.g. connectivity is lost) auto-detection can still
        pick it up later.

        Returns:
            Future resolved with the ingestion action
        """
        self.store.remove_hidden(contract)
        future = self.ingestor.add_token(contract)
        future.add_done_callback(lambda _: self.tokens_did_change())
        return future

    def delete_token(self, token: TokenRecord) -> None:
        """Remove a token and hide its contract from auto-detection."""
        self.store.add_hidden(token.contract)
        self.store.delete_token(token.contract)
        self.tokens_did_change()

    def add_custom_token(self, token: TokenRecord) -> None:
        self.store.add_token(token)
        self.tokens_did_change()

    # Lifecycle

    def shutdown(self, wait: bool = True) -> None:
        self.transacted_queue.shutdown(wait=wait)
        self.partner_queue.shutdown(wait=wait)
        self.fetch_executor.shutdown(wait=wait)

    def __enter__(self) -> "TokenCoordinator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()
