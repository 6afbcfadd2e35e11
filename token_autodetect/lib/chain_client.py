"""
Blockchain node and explorer client with automatic rate limit handling and retry logic.

This module provides the transport used by token auto-detection: JSON-RPC
``eth_call`` probes against a network's node, and Etherscan-compatible
explorer queries listing the token contracts a wallet has transacted with.
"""

import itertools
import random
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import decode_hex, encode_hex, function_signature_to_4byte_selector, to_checksum_address


# Network configuration mapping
NETWORKS = {
    "main": {
        "chain_id": 1,
        "rpc": "https://mainnet.infura.io/v3/{api_key}",
        "explorer": "https://api.etherscan.io/api",
        "symbol": "ETH",
    },
    "ropsten": {
        "chain_id": 3,
        "rpc": "https://ropsten.infura.io/v3/{api_key}",
        "explorer": "https://api-ropsten.etherscan.io/api",
        "symbol": "ETH",
    },
    "kovan": {
        "chain_id": 42,
        "rpc": "https://kovan.infura.io/v3/{api_key}",
        "explorer": "https://api-kovan.etherscan.io/api",
        "symbol": "ETH",
    },
    "rinkeby": {
        "chain_id": 4,
        "rpc": "https://rinkeby.infura.io/v3/{api_key}",
        "explorer": "https://api-rinkeby.etherscan.io/api",
        "symbol": "ETH",
    },
    "goerli": {
        "chain_id": 5,
        "rpc": "https://goerli.infura.io/v3/{api_key}",
        "explorer": "https://api-goerli.etherscan.io/api",
        "symbol": "ETH",
    },
    "poa": {
        "chain_id": 99,
        "rpc": "https://core.poa.network",
        "explorer": "https://blockscout.com/poa/core/api",
        "symbol": "POA",
    },
    "sokol": {
        "chain_id": 77,
        "rpc": "https://sokol.poa.network",
        "explorer": "https://blockscout.com/poa/sokol/api",
        "symbol": "POA",
    },
    "classic": {
        "chain_id": 61,
        "rpc": "https://www.ethercluster.com/etc",
        "explorer": "https://blockscout.com/etc/mainnet/api",
        "symbol": "ETC",
    },
    "callisto": {
        "chain_id": 820,
        "rpc": "https://callisto.network/",
        "explorer": None,
        "symbol": "CLO",
    },
    "xdai": {
        "chain_id": 100,
        "rpc": "https://dai.poa.network",
        "explorer": "https://blockscout.com/poa/dai/api",
        "symbol": "xDai",
    },
}

# ERC165 interface IDs identifying ERC721 contracts
ERC721_INTERFACE_ID = bytes.fromhex("80ac58cd")
ERC721_LEGACY_INTERFACE_ID = bytes.fromhex("6466353c")

# Explorer message meaning "the wallet has no such transfers"
NO_TRANSACTIONS_MESSAGE = "No transactions found"

# Retry configuration
DEFAULT_INITIAL_DELAY = 1.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_MAX_RETRIES = 5
DEFAULT_MAX_DELAY = 32.0  # seconds
DEFAULT_JITTER = 0.1  # ±10%
DEFAULT_TIMEOUT = 20.0  # seconds


class ChainAPIError(Exception):
    """Exception raised for node or explorer API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ChainRateLimitError(ChainAPIError):
    """Exception raised when rate limit is exceeded and retries are exhausted."""

    pass


class ContractCallError(ChainAPIError):
    """The node answered, but the contract call reverted or returned no usable data."""

    pass


def function_selector(signature: str) -> bytes:
    """4-byte selector for a function signature such as ``balanceOf(address)``."""
    return function_signature_to_4byte_selector(signature)


class ChainClient:
    """
    Client for one network's JSON-RPC node and block explorer.

    All network interactions go through this class, which handles:
    - Network-specific endpoint URLs
    - HTTP 429 rate limit retries with exponential backoff
    - ABI encoding of contract calls and decoding of their results
    - De-duplication of explorer transfer listings
    """

    def __init__(
        self,
        network: str,
        rpc_api_key: str = "",
        explorer_api_key: str = "",
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
        max_retries: int = DEFAULT_MAX_RETRIES,
        max_delay: float = DEFAULT_MAX_DELAY,
        jitter: float = DEFAULT_JITTER,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize the client.

        Args:
            network: Network name, one of NETWORKS
            rpc_api_key: Key substituted into the node URL (Infura-style endpoints)
            explorer_api_key: Etherscan-compatible explorer API key
            initial_delay: Initial delay in seconds for retry backoff
            backoff_multiplier: Multiplier for exponential backoff
            max_retries: Maximum number of retry attempts
            max_delay: Maximum delay cap in seconds
            jitter: Jitter factor (±percentage) to randomize delays
            timeout: Per-request timeout in seconds

        Raises:
            ValueError: If the network is not supported
        """
        if network not in NETWORKS:
            raise ValueError(f"Unsupported network: {network}")
        self.network = network
        self.rpc_api_key = rpc_api_key
        self.explorer_api_key = explorer_api_key
        self.initial_delay = initial_delay
        self.backoff_multiplier = backoff_multiplier
        self.max_retries = max_retries
        self.max_delay = max_delay
        self.jitter = jitter
        self.timeout = timeout
        self.session = requests.Session()
        self._request_ids = itertools.count(1)
        self._request_id_lock = threading.Lock()

    def _sanitize_error_message(self, message: str) -> str:
        """Remove API keys from error messages to prevent credential leakage."""
        for secret in (self.rpc_api_key, self.explorer_api_key):
            if secret:
                message = message.replace(secret, "[REDACTED]")
        return message

    def _get_rpc_url(self) -> str:
        """Get the JSON-RPC node URL for the client's network."""
        return NETWORKS[self.network]["rpc"].format(api_key=self.rpc_api_key)

    def _get_explorer_url(self) -> Optional[str]:
        """Get the explorer API URL, or None if the network has no explorer."""
        return NETWORKS[self.network]["explorer"]

    def _apply_jitter(self, delay: float) -> float:
        """Apply random jitter to a delay value."""
        jitter_range = delay * self.jitter
        return delay + random.uniform(-jitter_range, jitter_range)

    def _execute_with_retry(
        self,
        request_func: Callable[[], requests.Response],
    ) -> requests.Response:
        """
        Execute a request function with retry logic for rate limits and server errors.

        Args:
            request_func: A callable that returns a requests.Response

        Returns:
            The successful response

        Raises:
            ChainAPIError: For API errors after retries exhausted
            ChainRateLimitError: When rate limit retries are exhausted
        """
        delay = self.initial_delay

        for attempt in range(self.max_retries + 1):
            try:
                response = request_func()

                if response.status_code == 429:
                    if attempt < self.max_retries:
                        time.sleep(self._apply_jitter(min(delay, self.max_delay)))
                        delay *= self.backoff_multiplier
                        continue
                    raise ChainRateLimitError(
                        "Rate limit exceeded and max retries reached",
                        status_code=429,
                    )

                if response.status_code == 401:
                    raise ChainAPIError("Invalid API key", status_code=401)

                if response.status_code >= 500:
                    if attempt < self.max_retries:
                        time.sleep(self._apply_jitter(min(delay, self.max_delay)))
                        delay *= self.backoff_multiplier
                        continue
                    raise ChainAPIError(
                        f"Server error: {response.status_code}",
                        status_code=response.status_code,
                    )

                response.raise_for_status()
                return response

            except requests.RequestException as e:
                if attempt < self.max_retries:
                    time.sleep(self._apply_jitter(min(delay, self.max_delay)))
                    delay *= self.backoff_multiplier
                    continue
                sanitized_msg = self._sanitize_error_message(str(e))
                raise ChainAPIError(f"Request failed: {sanitized_msg}") from e

        raise ChainAPIError("Max retries exceeded")

    def _parse_json(self, response: requests.Response) -> Dict[str, Any]:
        """Decode a JSON response body, raising ChainAPIError when it is not a JSON object."""
        try:
            data = response.json()
        except ValueError as e:
            raise ChainAPIError(
                self._sanitize_error_message(f"Invalid JSON response: {response.text[:100]!r}"),
                status_code=response.status_code,
            ) from e
        if not isinstance(data, dict):
            raise ChainAPIError(
                f"Unexpected response: {str(data)[:100]}", status_code=response.status_code
            )
        return data

    def _request(self, method: str, params: Any) -> Any:
        """
        Make a JSON-RPC request with automatic 429 retry and exponential backoff.

        Args:
            method: JSON-RPC method name
            params: Method parameters

        Returns:
            The 'result' field from the JSON-RPC response

        Raises:
            ContractCallError: When an eth_call is rejected by the node (revert)
            ChainAPIError: For other API errors
            ChainRateLimitError: When rate limit retries are exhausted
        """
        with self._request_id_lock:
            request_id = next(self._request_ids)
        url = self._get_rpc_url()
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": request_id,
        }

        response = self._execute_with_retry(
            lambda: self.session.post(url, json=payload, timeout=self.timeout)
        )
        data = self._parse_json(response)

        if "error" in data:
            error = data["error"]
            error_class = ContractCallError if method == "eth_call" else ChainAPIError
            raise error_class(
                f"API error: {error.get('message', str(error))}",
                status_code=error.get("code"),
            )

        return data.get("result")

    def _request_explorer(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Make a REST request to the explorer API with automatic retry.

        Args:
            params: Query parameters (module, action, ...)

        Returns:
            The 'result' list of the response; empty when there are no transactions
        """
        url = self._get_explorer_url()
        if url is None:
            return []

        query = dict(params)
        if self.explorer_api_key:
            query["apikey"] = self.explorer_api_key

        response = self._execute_with_retry(
            lambda: self.session.get(url, params=query, timeout=self.timeout)
        )
        data = self._parse_json(response)

        if str(data.get("status")) == "1":
            return data.get("result") or []

        message = data.get("message", "")
        result = data.get("result")
        if message.startswith(NO_TRANSACTIONS_MESSAGE) or result == []:
            return []
        detail = self._sanitize_error_message(str(result or message))
        if "rate limit" in detail.lower():
            raise ChainRateLimitError(f"Explorer rate limit: {detail}", status_code=429)
        raise ChainAPIError(f"Explorer error: {detail}")

    def _call(
        self,
        contract: str,
        signature: str,
        output_types: Sequence[str],
        arg_types: Sequence[str] = (),
        args: Sequence[Any] = (),
    ) -> tuple:
        """
        Call a view function on a contract and decode its return values.

        Args:
            contract: Contract address
            signature: Function signature, e.g. "balanceOf(address)"
            output_types: ABI types of the return values
            arg_types: ABI types of the arguments
            args: Argument values

        Returns:
            Tuple of decoded return values

        Raises:
            ContractCallError: If the call reverts or returns undecodable data
        """
        try:
            calldata = function_selector(signature) + encode(list(arg_types), list(args))
        except EncodingError as e:
            raise ContractCallError(f"Cannot encode {signature}: {e}") from e

        result = self._request(
            "eth_call",
            [{"to": to_checksum_address(contract), "data": encode_hex(calldata)}, "latest"],
        )
        raw = decode_hex(result or "0x")
        if not raw:
            raise ContractCallError(f"Empty result calling {signature} on {contract}")

        try:
            return decode(list(output_types), raw)
        except (DecodingError, OverflowError) as e:
            raise ContractCallError(f"Cannot decode {signature} on {contract}: {e}") from e

    def _call_text(self, contract: str, signature: str) -> str:
        """Call a string getter, accepting bytes32 from older token contracts."""
        try:
            (value,) = self._call(contract, signature, ["string"])
            return value
        except ContractCallError:
            (raw,) = self._call(contract, signature, ["bytes32"])
            return raw.rstrip(b"\x00").decode("utf-8", errors="replace")

    def get_name(self, contract: str) -> str:
        """
        Get a token contract's name.

        Args:
            contract: Token contract address

        Returns:
            The name; may be empty for contracts that are not tokens
        """
        return self._call_text(contract, "name()")

    def get_symbol(self, contract: str) -> str:
        """Get a token contract's symbol."""
        return self._call_text(contract, "symbol()")

    def get_decimals(self, contract: str) -> int:
        """Get an ERC20 contract's decimals."""
        (decimals,) = self._call(contract, "decimals()", ["uint8"])
        return decimals

    def get_erc20_balance(self, contract: str, owner: str) -> int:
        """
        Get an ERC20 balance.

        Args:
            contract: Token contract address
            owner: Wallet address

        Returns:
            Balance in the token's smallest unit
        """
        (balance,) = self._call(
            contract, "balanceOf(address)", ["uint256"], ["address"], [to_checksum_address(owner)]
        )
        return balance

    def get_erc875_balance(self, contract: str, owner: str) -> List[str]:
        """
        Get an ERC875 balance.

        Returns:
            One hex string per ticket slot the wallet holds
        """
        (balance,) = self._call(
            contract, "balanceOf(address)", ["bytes32[]"], ["address"], [to_checksum_address(owner)]
        )
        return [encode_hex(item) for item in balance]

    def get_erc721_balance(self, contract: str, owner: str) -> List[str]:
        """
        Get an ERC721 balance.

        Token IDs are enumerated when the contract supports ERC721Enumerable;
        otherwise one opaque "1" item is returned per token owned.

        Returns:
            List of balance items, one per token owned
        """
        checksum_owner = to_checksum_address(owner)
        (count,) = self._call(
            contract, "balanceOf(address)", ["uint256"], ["address"], [checksum_owner]
        )

        token_ids: List[str] = []
        try:
            for index in range(count):
                (token_id,) = self._call(
                    contract,
                    "tokenOfOwnerByIndex(address,uint256)",
                    ["uint256"],
                    ["address", "uint256"],
                    [checksum_owner, index],
                )
                token_ids.append(str(token_id))
        except ContractCallError:
            return ["1"] * count

        return token_ids

    def is_stormbird_contract(self, contract: str) -> bool:
        """Probe the ERC875 marker function."""
        (flag,) = self._call(contract, "isStormBirdContract()", ["bool"])
        return flag

    def supports_interface(self, contract: str, interface_id: bytes) -> bool:
        """ERC165 supportsInterface probe."""
        (supported,) = self._call(
            contract, "supportsInterface(bytes4)", ["bool"], ["bytes4"], [interface_id]
        )
        return supported

    def list_contracts_interacted(self, wallet: str, fungible: bool) -> List[str]:
        """
        List token contracts the wallet has sent or received transfers with.

        Args:
            wallet: Wallet address
            fungible: True for ERC20-style transfers, False for non-fungible transfers

        Returns:
            Contract addresses in first-seen order, without duplicates
        """
        params = {
            "module": "account",
            "action": "tokentx" if fungible else "tokennfttx",
            "address": wallet,
            "startblock": 0,
            "sort": "asc",
        }

        contracts: List[str] = []
        seen = set()
        for transfer in self._request_explorer(params):
            contract = transfer.get("contractAddress")
            if not contract or contract.lower() in seen:
                continue
            seen.add(contract.lower())
            contracts.append(contract)

        return contracts

    def get_native_token_info(self) -> Dict[str, Any]:
        """
        Get native currency info for the client's network.

        Returns:
            Dict with chain_id and symbol
        """
        config = NETWORKS[self.network]
        return {"chain_id": config["chain_id"], "symbol": config["symbol"]}
