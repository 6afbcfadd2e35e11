"""
Data models for wallet token auto-detection.

This module defines the token standards, the per-field and terminal results
produced while fetching contract data, the token records held by the store,
and the report returned by each detection pass.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Union

from eth_utils import is_address, to_checksum_address


# Contract address the store uses for the network's native currency
NATIVE_CURRENCY_CONTRACT = "0x0000000000000000000000000000000000000000"

# CSV column order for output
CSV_COLUMNS = [
    "network",
    "contract",
    "name",
    "symbol",
    "decimals",
    "token_type",
    "value",
    "balance",
]


class TokenStandard(str, Enum):
    """On-chain token standard of a contract."""

    NATIVE_CURRENCY = "NATIVE"
    FUNGIBLE = "ERC20"
    SEMI_FUNGIBLE = "ERC875"
    NON_FUNGIBLE = "ERC721"
    DELEGATE = "DELEGATE"

    @property
    def required_fields(self) -> FrozenSet[str]:
        """Fields that must arrive before a contract of this standard is complete."""
        if self is TokenStandard.NATIVE_CURRENCY:
            return frozenset()
        if self in (TokenStandard.SEMI_FUNGIBLE, TokenStandard.NON_FUNGIBLE):
            return frozenset({"name", "symbol", "balance"})
        return frozenset({"name", "symbol", "decimals"})

    @property
    def uses_balance(self) -> bool:
        return self in (TokenStandard.SEMI_FUNGIBLE, TokenStandard.NON_FUNGIBLE)


def normalize_address(address: str) -> str:
    """Lowercase form used as the identity of a contract address."""
    return (address or "").strip().lower()


def parse_address(address: str) -> Optional[str]:
    """
    Parse a contract address.

    Args:
        address: Hex address in any case

    Returns:
        The EIP-55 checksummed address, or None if it cannot be parsed
    """
    candidate = (address or "").strip()
    if not is_address(candidate):
        return None
    return to_checksum_address(candidate)


def same_contract(a: str, b: str) -> bool:
    return normalize_address(a) == normalize_address(b)


@dataclass(frozen=True, eq=False)
class ContractCandidate:
    """A contract a detector wants to look at. Identity ignores address case."""

    address: str
    network: str

    @property
    def key(self) -> str:
        return normalize_address(self.address)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ContractCandidate):
            return NotImplemented
        return self.key == other.key and self.network == other.network

    def __hash__(self) -> int:
        return hash((self.key, self.network))


# Fields reported one at a time while a contract's data is being fetched


@dataclass(frozen=True)
class Name:
    value: str


@dataclass(frozen=True)
class Symbol:
    value: str


@dataclass(frozen=True)
class Balance:
    value: List[str]


@dataclass(frozen=True)
class Decimals:
    value: int


ClassifiedField = Union[Name, Symbol, Balance, Decimals]


# Terminal results of fetching one contract's data


@dataclass(frozen=True)
class NonFungibleComplete:
    name: str
    symbol: str
    balance: List[str]
    standard: TokenStandard


@dataclass(frozen=True)
class FungibleComplete:
    name: str
    symbol: str
    decimals: int


@dataclass(frozen=True)
class DelegateComplete:
    """Contract answered on-chain but is not a token (empty symbol)."""


@dataclass(frozen=True)
class Failed:
    """
    A field fetch failed.

    network_reachable is sampled from the reachability probe at failure time:
    True, False, or None when reachability is unknown.
    """

    network_reachable: Optional[bool] = None


FetchOutcome = Union[NonFungibleComplete, FungibleComplete, DelegateComplete, Failed]


class IngestAction(str, Enum):
    """What the ingestor did with a fetch outcome."""

    ADDED = "added"
    DELEGATE = "delegate"
    DEAD = "dead"
    IGNORED = "ignored"


@dataclass
class TokenRecord:
    """
    A token in the wallet's token list.

    Fungible tokens carry decimals and a value; semi-fungible and
    non-fungible tokens carry a list of balance items and decimals of 0.
    """

    contract: str
    network: str
    name: str
    symbol: str
    decimals: int
    standard: TokenStandard
    value: str = "0"
    balance: List[str] = field(default_factory=list)

    @classmethod
    def fungible(
        cls, contract: str, network: str, name: str, symbol: str, decimals: int
    ) -> "TokenRecord":
        return cls(
            contract=contract,
            network=network,
            name=name,
            symbol=symbol,
            decimals=decimals,
            standard=TokenStandard.FUNGIBLE,
            value="0",
        )

    @classmethod
    def non_fungible(
        cls,
        contract: str,
        network: str,
        name: str,
        symbol: str,
        balance: List[str],
        standard: TokenStandard,
    ) -> "TokenRecord":
        return cls(
            contract=contract,
            network=network,
            name=name,
            symbol=symbol,
            decimals=0,
            standard=standard,
            balance=list(balance),
        )

    @property
    def key(self) -> str:
        return normalize_address(self.contract)

    def to_csv_row(self) -> List[str]:
        """Convert the token to a CSV row (list of strings)."""
        return [
            self.network,
            self.contract,
            self.name,
            self.symbol,
            str(self.decimals),
            self.standard.value,
            self.value,
            " ".join(self.balance),
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contract": self.contract,
            "network": self.network,
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "type": self.standard.value,
            "value": self.value,
            "balance": list(self.balance),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenRecord":
        return cls(
            contract=data["contract"],
            network=data["network"],
            name=data.get("name", ""),
            symbol=data.get("symbol", ""),
            decimals=int(data.get("decimals", 0)),
            standard=TokenStandard(data.get("type", TokenStandard.FUNGIBLE.value)),
            value=data.get("value", "0"),
            balance=list(data.get("balance", [])),
        )


@dataclass(frozen=True)
class KnownContractSets:
    """
    Lowercase contract addresses the wallet already knows about.

    already_added, deleted and hidden are mutually exclusive from the
    detectors' point of view; delegates may overlap with any of them.
    """

    already_added: FrozenSet[str] = frozenset()
    deleted: FrozenSet[str] = frozenset()
    hidden: FrozenSet[str] = frozenset()
    delegates: FrozenSet[str] = frozenset()

    def excluded_for_transacted(self) -> FrozenSet[str]:
        """Contracts never re-detected from transaction history."""
        return self.already_added | self.deleted | self.hidden | self.delegates

    def excluded_for_partner(self) -> FrozenSet[str]:
        """Contracts never re-detected from a curated list. Delegates are not excluded."""
        return self.already_added | self.deleted | self.hidden


@dataclass
class DetectionReport:
    """
    Result of one detection pass.

    Counts are per contract; a pass discarded because the wallet changed
    while it ran is marked stale.
    """

    kind: str
    wallet: str
    candidates: int = 0
    added: int = 0
    delegates: int = 0
    dead: int = 0
    ignored: int = 0
    skipped_unparsable: int = 0
    failed: int = 0
    stale: bool = False

    def record(self, action: IngestAction) -> None:
        if action is IngestAction.ADDED:
            self.added += 1
        elif action is IngestAction.DELEGATE:
            self.delegates += 1
        elif action is IngestAction.DEAD:
            self.dead += 1
        else:
            self.ignored += 1
