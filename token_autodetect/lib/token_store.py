"""
Token store for one wallet on one network.

Holds the wallet's token list and the contract sets auto-detection checks
against (deleted, hidden, delegate), caches contract classification, and
reads contract data on-chain through the chain client. Every public call is
atomic, so concurrent ingestions can add and delete freely.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

from .chain_client import ChainAPIError, ChainClient
from .contract_classifier import ContractClassifier
from .models import KnownContractSets, TokenRecord, TokenStandard, normalize_address

logger = logging.getLogger(__name__)

BalanceData = Union[int, List[str]]


class TokensDataStore:
    """In-memory token store with optional JSON persistence."""

    def __init__(
        self,
        client: ChainClient,
        wallet: str,
        network: str,
        classifier: Optional[ContractClassifier] = None,
        path: Optional[str] = None,
    ):
        """
        Args:
            client: Chain client used for on-chain reads
            wallet: Wallet address balances are read for
            network: Network name the store is scoped to
            classifier: Classifier used on cache misses
            path: JSON file used by save()
        """
        self.client = client
        self.wallet = wallet
        self.network = network
        self.classifier = classifier or ContractClassifier(client)
        self.path = path
        self._lock = threading.RLock()
        self._tokens: Dict[str, TokenRecord] = {}
        self._deleted: Set[str] = set()
        self._hidden: Set[str] = set()
        self._delegates: Set[str] = set()
        self._token_types: Dict[str, TokenStandard] = {}

    # Contract sets

    def list_enabled(self) -> Set[str]:
        with self._lock:
            return set(self._tokens)

    def list_deleted(self) -> Set[str]:
        with self._lock:
            return set(self._deleted)

    def list_hidden(self) -> Set[str]:
        with self._lock:
            return set(self._hidden)

    def list_delegates(self) -> Set[str]:
        with self._lock:
            return set(self._delegates)

    def known_contracts(self) -> KnownContractSets:
        """Snapshot of all four contract sets taken under one lock."""
        with self._lock:
            return KnownContractSets(
                already_added=frozenset(self._tokens),
                deleted=frozenset(self._deleted),
                hidden=frozenset(self._hidden),
                delegates=frozenset(self._delegates),
            )

    def enabled_tokens(self) -> List[TokenRecord]:
        with self._lock:
            return list(self._tokens.values())

    def get_token(self, address: str) -> Optional[TokenRecord]:
        with self._lock:
            return self._tokens.get(normalize_address(address))

    # Mutations

    def add_token(self, token: TokenRecord) -> None:
        key = token.key
        with self._lock:
            self._tokens[key] = token
            self._deleted.discard(key)
            self._hidden.discard(key)
            self._token_types[key] = token.standard
        logger.debug("Added %s token %s (%s)", token.standard.value, token.symbol, token.contract)

    def delete_token(self, address: str) -> None:
        with self._lock:
            self._tokens.pop(normalize_address(address), None)

    def add_delegate(self, address: str) -> None:
        with self._lock:
            self._delegates.add(normalize_address(address))

    def add_deleted_contract(self, address: str) -> None:
        with self._lock:
            self._deleted.add(normalize_address(address))

    def add_hidden(self, address: str) -> None:
        with self._lock:
            self._hidden.add(normalize_address(address))

    def remove_hidden(self, address: str) -> None:
        with self._lock:
            self._hidden.discard(normalize_address(address))

    # On-chain reads

    def classify(self, address: str) -> TokenStandard:
        """
        Classify a contract, using the cache when possible.

        DELEGATE results are not cached: they also stand for a failed probe,
        which should be retried on the next pass.
        """
        key = normalize_address(address)
        with self._lock:
            cached = self._token_types.get(key)
        if cached is not None:
            return cached

        standard = self.classifier.classify(address)
        if standard is not TokenStandard.DELEGATE:
            with self._lock:
                self._token_types[key] = standard
        return standard

    def get_balance(
        self, standard: TokenStandard, address: str, owner: Optional[str] = None
    ) -> BalanceData:
        """
        Read the wallet's balance of a contract the way its standard requires.

        Args:
            standard: Token standard of the contract
            address: Contract address
            owner: Wallet to read for; defaults to the store's wallet

        Returns:
            An integer for fungible tokens, a list of balance items otherwise

        Raises:
            ChainAPIError: If the read fails
            ValueError: For standards without a contract balance
        """
        owner = owner or self.wallet
        if standard is TokenStandard.SEMI_FUNGIBLE:
            return self.client.get_erc875_balance(address, owner)
        if standard is TokenStandard.NON_FUNGIBLE:
            return self.client.get_erc721_balance(address, owner)
        if standard is TokenStandard.FUNGIBLE:
            return self.client.get_erc20_balance(address, owner)
        raise ValueError(f"No contract balance for {standard.value} tokens")

    def get_name(self, address: str) -> str:
        return self.client.get_name(address)

    def get_symbol(self, address: str) -> str:
        return self.client.get_symbol(address)

    def get_decimals(self, address: str) -> int:
        return self.client.get_decimals(address)

    def refresh_empty_non_fungible_names(self) -> int:
        """
        Re-read the names of non-fungible tokens stored without one.

        Returns:
            Number of tokens whose name was filled in
        """
        with self._lock:
            unnamed = [
                token
                for token in self._tokens.values()
                if token.standard.uses_balance and not token.name
            ]

        refreshed = 0
        for token in unnamed:
            try:
                name = self.get_name(token.contract)
            except ChainAPIError as e:
                logger.debug("Name refresh failed for %s: %s", token.contract, e)
                continue
            if name:
                with self._lock:
                    token.name = name
                refreshed += 1
        return refreshed

    # Persistence

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "wallet": self.wallet,
                "network": self.network,
                "tokens": [token.to_dict() for token in self._tokens.values()],
                "deleted": sorted(self._deleted),
                "hidden": sorted(self._hidden),
                "delegates": sorted(self._delegates),
            }

    def save(self, path: Optional[str] = None) -> Optional[str]:
        """
        Write the store to a JSON file.

        Returns:
            The path written, or None if the store has no path
        """
        target = path or self.path
        if target is None:
            return None
        with open(target, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        return target

    @classmethod
    def load(
        cls,
        path: str,
        client: ChainClient,
        wallet: str,
        network: str,
        classifier: Optional[ContractClassifier] = None,
    ) -> "TokensDataStore":
        """
        Load a store saved with save(). A missing file gives an empty store.

        Only entries for the requested network are loaded.
        """
        store = cls(client, wallet, network, classifier=classifier, path=path)
        if not Path(path).exists():
            return store

        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if data.get("network", network) != network:
            logger.info("Ignoring store %s saved for network %s", path, data.get("network"))
            return store

        for item in data.get("tokens", []):
            store.add_token(TokenRecord.from_dict(item))
        for address in data.get("deleted", []):
            store.add_deleted_contract(address)
        for address in data.get("hidden", []):
            store.add_hidden(address)
        for address in data.get("delegates", []):
            store.add_delegate(address)
        return store
