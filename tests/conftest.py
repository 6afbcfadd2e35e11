"""
Pytest configuration and shared fixtures for token auto-detection tests.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

import pytest

from token_autodetect.lib.chain_client import ChainAPIError, ContractCallError, ERC721_INTERFACE_ID
from token_autodetect.lib.config import DetectionConfig
from token_autodetect.lib.models import TokenStandard
from token_autodetect.lib.token_store import TokensDataStore


WALLET = "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"  # vitalik.eth
OTHER_WALLET = "0x00000000219ab540356cBB839Cbe05303d7705Fa"

FOO_TOKEN = "0x" + "aa" * 20
BAR_TOKEN = "0x" + "bb" * 20
BAZ_TOKEN = "0x" + "cc" * 20
TICKET_TOKEN = "0x" + "dd" * 20
KITTY_TOKEN = "0x" + "ee" * 20


class FakeChainClient:
    """
    In-process stand-in for ChainClient.

    Contracts are configured with add_contract(); reads listed in `fail`
    raise ChainAPIError as a network failure would.
    """

    def __init__(self):
        self.contracts: Dict[str, dict] = {}
        self.interactions: Dict[bool, List[str]] = {True: [], False: []}
        self.failing_listings = set()
        self.calls: List[tuple] = []
        self._lock = threading.Lock()

    def add_contract(
        self,
        address: str,
        standard: TokenStandard,
        name: str = "",
        symbol: str = "",
        decimals: int = 18,
        balance=None,
        fail=(),
    ) -> None:
        self.contracts[address.lower()] = {
            "standard": standard,
            "name": name,
            "symbol": symbol,
            "decimals": decimals,
            "balance": balance,
            "fail": set(fail),
        }

    def _record(self, *call) -> None:
        with self._lock:
            self.calls.append(call)

    def _contract(self, address: str, read: str) -> dict:
        self._record(read, address.lower())
        contract = self.contracts.get(address.lower())
        if contract is None:
            raise ContractCallError(f"Empty result calling {read}")
        if read in contract["fail"]:
            raise ChainAPIError(f"Request failed: {read} timed out")
        return contract

    def calls_for(self, address: str) -> List[tuple]:
        with self._lock:
            return [call for call in self.calls if call[1:2] == (address.lower(),)]

    def get_name(self, contract: str) -> str:
        return self._contract(contract, "name")["name"]

    def get_symbol(self, contract: str) -> str:
        return self._contract(contract, "symbol")["symbol"]

    def get_decimals(self, contract: str) -> int:
        data = self._contract(contract, "decimals")
        if data["standard"] is not TokenStandard.FUNGIBLE:
            raise ContractCallError("decimals() reverted")
        return data["decimals"]

    def get_erc20_balance(self, contract: str, owner: str) -> int:
        return self._contract(contract, "balance")["balance"]

    def get_erc875_balance(self, contract: str, owner: str) -> List[str]:
        return list(self._contract(contract, "balance")["balance"])

    def get_erc721_balance(self, contract: str, owner: str) -> List[str]:
        return list(self._contract(contract, "balance")["balance"])

    def is_stormbird_contract(self, contract: str) -> bool:
        data = self._contract(contract, "isStormBirdContract")
        if data["standard"] is not TokenStandard.SEMI_FUNGIBLE:
            raise ContractCallError("isStormBirdContract() reverted")
        return True

    def supports_interface(self, contract: str, interface_id: bytes) -> bool:
        data = self._contract(contract, "supportsInterface")
        return data["standard"] is TokenStandard.NON_FUNGIBLE and interface_id == ERC721_INTERFACE_ID

    def list_contracts_interacted(self, wallet: str, fungible: bool) -> List[str]:
        self._record("list", wallet.lower(), fungible)
        if fungible in self.failing_listings:
            raise ChainAPIError("Explorer error: NOTOK")
        return list(self.interactions[fungible])

    def get_native_token_info(self) -> dict:
        return {"chain_id": 1, "symbol": "ETH"}


class FakeReachability:
    """Reachability probe returning a fixed answer and counting calls."""

    def __init__(self, reachable: Optional[bool] = True):
        self.reachable = reachable
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self) -> Optional[bool]:
        with self._lock:
            self.calls += 1
        return self.reachable


class FakeAssetDefinitions:
    """Asset definition store that records fetches and lets tests announce changes."""

    def __init__(self):
        self.fetched: List[str] = []
        self.subscribers = []

    def subscribe(self, callback) -> None:
        self.subscribers.append(callback)

    def fetch_xml(self, address: str) -> Optional[str]:
        self.fetched.append(address)
        return None

    def announce_change(self, address: str) -> None:
        for callback in self.subscribers:
            callback(address)


class NotificationCounter:
    """Counts token-list-changed notifications."""

    def __init__(self):
        self.count = 0
        self._lock = threading.Lock()

    def __call__(self) -> None:
        with self._lock:
            self.count += 1


@pytest.fixture
def sample_wallet_address():
    """Sample Ethereum wallet address for testing."""
    return WALLET


@pytest.fixture
def mock_api_key():
    """Mock node and explorer API key for testing."""
    return "test-api-key-12345"


@pytest.fixture
def fake_client():
    return FakeChainClient()


@pytest.fixture
def store(fake_client):
    return TokensDataStore(fake_client, WALLET, "main")


@pytest.fixture
def reachability():
    return FakeReachability(True)


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=8, thread_name_prefix="test-fetch")
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def config():
    return DetectionConfig(refresh_timeout=3.0)
