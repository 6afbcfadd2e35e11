"""
Detection passes that find tokens a wallet holds but has not added yet.

TransactedTokenDetector looks at the contracts the wallet has transferred
tokens with; PartnerTokenDetector checks the wallet's balance in a curated
list of contracts. Each detector runs at most one pass at a time on its own
queue, and every accepted pass resolves a future with a DetectionReport.
"""

import logging
import threading
from concurrent.futures import Executor, Future
from enum import Enum
from typing import Callable, Iterable, List, Optional, Protocol, Sequence, Tuple

from .chain_client import ChainAPIError
from .config import DetectionConfig
from .models import (
    ContractCandidate,
    DetectionReport,
    IngestAction,
    TokenStandard,
    normalize_address,
    parse_address,
    same_contract,
)
from .partner_contracts import PartnerContract
from .single_flight import SingleFlightGate
from .token_ingestor import TokenIngestor
from .token_store import TokensDataStore

logger = logging.getLogger(__name__)

Notify = Callable[[], None]
WalletProvider = Callable[[], Optional[str]]


class ContractInteractionLister(Protocol):
    def list_contracts_interacted(self, wallet: str, fungible: bool) -> List[str]:
        ...


def select_candidates(
    contracts: Iterable[str], excluded: Iterable[str], network: str
) -> List[ContractCandidate]:
    """
    Lowercase and de-duplicate contracts, dropping any in the excluded set.

    Args:
        contracts: Contract addresses in any case
        excluded: Lowercase addresses to leave out
        network: Network the candidates belong to

    Returns:
        Candidates in first-seen order
    """
    excluded = set(excluded)
    candidates: List[ContractCandidate] = []
    seen = set()
    for contract in contracts:
        key = normalize_address(contract)
        if not key or key in excluded or key in seen:
            continue
        seen.add(key)
        candidates.append(ContractCandidate(address=key, network=network))
    return candidates


class _BatchProgress:
    """Counts per-contract ingestions of a pass until all have finished."""

    def __init__(
        self,
        total: int,
        report: DetectionReport,
        on_each: Optional[Notify] = None,
        on_last: Optional[Notify] = None,
    ):
        self.report = report
        self.on_each = on_each
        self.on_last = on_last
        self._remaining = total
        self._lock = threading.Lock()
        self._finished = threading.Event()

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._remaining > 0

    def done(self, future: "Future[IngestAction]") -> None:
        with self._lock:
            error = future.exception()
            if error is not None:
                self.report.failed += 1
            else:
                self.report.record(future.result())
            self._remaining -= 1
            last = self._remaining == 0

        if self.on_each is not None:
            self.on_each()
        if last:
            if self.on_last is not None:
                self.on_last()
            self._finished.set()

    def wait(self) -> None:
        self._finished.wait()


class _Detector:
    """Gate and queue handling shared by both detectors."""

    kind = ""

    def __init__(
        self,
        store: TokensDataStore,
        ingestor: TokenIngestor,
        notify: Notify,
        config: DetectionConfig,
        queue: Executor,
        fetch_executor: Executor,
        gate: SingleFlightGate,
    ):
        self.store = store
        self.ingestor = ingestor
        self.notify = notify
        self.config = config
        self.queue = queue
        self.fetch_executor = fetch_executor
        self.gate = gate

    def _accept(self) -> bool:
        if self.config.test_mode:
            logger.debug("Skipping %s detection in test mode", self.kind)
            return False
        if self.config.auto_fetching_disabled:
            logger.debug("Skipping %s detection: auto fetching disabled", self.kind)
            return False
        if not self.gate.try_acquire():
            logger.debug("Skipping %s detection: a pass is already running", self.kind)
            return False
        return True

    def _submit(self, detect: Callable[..., DetectionReport], *args) -> "Future[DetectionReport]":
        def guarded() -> DetectionReport:
            try:
                return detect(*args)
            finally:
                self.gate.release()

        try:
            return self.queue.submit(guarded)
        except RuntimeError:
            self.gate.release()
            raise


class TransactedTokenDetector(_Detector):
    """
    Detects tokens from the wallet's fungible and non-fungible transfer history.

    The token list is refreshed once when every detected contract has been
    ingested, and once more after refresh_timeout if ingestion is still
    running then; the timeout does not stop outstanding fetches.
    """

    kind = "transacted"

    def __init__(
        self,
        store: TokensDataStore,
        lister: ContractInteractionLister,
        ingestor: TokenIngestor,
        notify: Notify,
        wallet_provider: WalletProvider,
        config: DetectionConfig,
        queue: Executor,
        fetch_executor: Executor,
        gate: SingleFlightGate,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        super().__init__(store, ingestor, notify, config, queue, fetch_executor, gate)
        self.lister = lister
        self.wallet_provider = wallet_provider
        self.timer_factory = timer_factory

    def run(self, wallet: str) -> Optional["Future[DetectionReport]"]:
        """
        Start a detection pass for a wallet.

        Returns:
            Future of the pass's report, or None if the pass was dropped
        """
        if not self._accept():
            return None
        return self._submit(self._detect, wallet)

    def _list_contracts(self, wallet: str, fungible: bool) -> List[str]:
        try:
            return self.lister.list_contracts_interacted(wallet, fungible)
        except ChainAPIError as e:
            logger.warning(
                "Listing %s transfers for %s failed: %s",
                "fungible" if fungible else "non-fungible",
                wallet,
                e,
            )
            return []
        except Exception:
            logger.exception(
                "Unexpected error listing %s transfers for %s",
                "fungible" if fungible else "non-fungible",
                wallet,
            )
            return []

    def _detect(self, wallet: str) -> DetectionReport:
        report = DetectionReport(kind=self.kind, wallet=wallet)

        queries = [
            self.fetch_executor.submit(self._list_contracts, wallet, fungible)
            for fungible in (True, False)
        ]
        detected: List[str] = []
        for query in queries:
            detected.extend(query.result())

        if not same_contract(self.wallet_provider() or "", wallet):
            logger.info("Discarding transacted tokens for %s: wallet changed", wallet)
            report.stale = True
            return report

        known = self.store.known_contracts()
        candidates = select_candidates(detected, known.excluded_for_transacted(), self.store.network)
        report.candidates = len(candidates)
        if not candidates:
            return report

        def refresh_if_pending() -> None:
            if progress.pending:
                self.notify()

        timer = self.timer_factory(self.config.refresh_timeout, refresh_if_pending)
        timer.daemon = True

        def on_last() -> None:
            timer.cancel()
            self.notify()

        progress = _BatchProgress(len(candidates), report, on_last=on_last)
        timer.start()
        for candidate in candidates:
            self.ingestor.add_token(candidate.address).add_done_callback(progress.done)

        progress.wait()
        logger.info(
            "Transacted token detection for %s: %d candidates, %d added",
            wallet,
            report.candidates,
            report.added,
        )
        return report


class _BalanceCheck(Enum):
    HOLDS = "holds"
    EMPTY = "empty"
    SKIPPED = "skipped"
    UNPARSABLE = "unparsable"
    FAILED = "failed"


class PartnerTokenDetector(_Detector):
    """
    Detects tokens from a curated contract list by checking the wallet's balance.

    Delegate contracts are not excluded from the curated list.
    """

    kind = "partner"

    def run(
        self, wallet: str, contracts: Sequence[PartnerContract]
    ) -> Optional["Future[DetectionReport]"]:
        """
        Start a detection pass over a curated list.

        Args:
            wallet: Wallet address
            contracts: (name, contract) pairs to check

        Returns:
            Future of the pass's report, or None if the pass was dropped
        """
        if not self._accept():
            return None
        return self._submit(self._detect, wallet, list(contracts))

    def _check_balance(self, wallet: str, address: str) -> Tuple[_BalanceCheck, Optional[str]]:
        contract = parse_address(address)
        if contract is None:
            return _BalanceCheck.UNPARSABLE, None

        try:
            standard = self.store.classify(contract)
            if standard not in (TokenStandard.SEMI_FUNGIBLE, TokenStandard.FUNGIBLE):
                # TODO: check ERC721 balances of curated contracts too
                return _BalanceCheck.SKIPPED, contract
            balance = self.store.get_balance(standard, contract, owner=wallet)
        except ChainAPIError as e:
            logger.debug("Balance check for %s failed: %s", contract, e)
            return _BalanceCheck.FAILED, contract
        except Exception:
            logger.exception("Unexpected error checking the balance of %s", contract)
            return _BalanceCheck.FAILED, contract

        if standard is TokenStandard.SEMI_FUNGIBLE:
            holds = len(balance) > 0
        else:
            holds = balance > 0
        return (_BalanceCheck.HOLDS if holds else _BalanceCheck.EMPTY), contract

    def _detect(self, wallet: str, contracts: List[PartnerContract]) -> DetectionReport:
        report = DetectionReport(kind=self.kind, wallet=wallet)

        known = self.store.known_contracts()
        candidates = select_candidates(
            (contract for _, contract in contracts),
            known.excluded_for_partner(),
            self.store.network,
        )
        report.candidates = len(candidates)

        checks = [
            self.fetch_executor.submit(self._check_balance, wallet, candidate.address)
            for candidate in candidates
        ]

        holding: List[str] = []
        for check in checks:
            result, contract = check.result()
            if result is _BalanceCheck.HOLDS:
                holding.append(contract)
            elif result is _BalanceCheck.UNPARSABLE:
                report.skipped_unparsable += 1
            elif result is _BalanceCheck.FAILED:
                report.failed += 1
            else:
                report.ignored += 1

        if holding:
            progress = _BatchProgress(len(holding), report, on_each=self.notify)
            for contract in holding:
                self.ingestor.add_token(contract).add_done_callback(progress.done)
            progress.wait()

        logger.info(
            "Partner token detection for %s: %d candidates, %d added",
            wallet,
            report.candidates,
            report.added,
        )
        return report
