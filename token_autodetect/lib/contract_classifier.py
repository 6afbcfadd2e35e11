"""
Token standard classification by probing a contract on-chain.
"""

import logging

from .chain_client import (
    ERC721_INTERFACE_ID,
    ERC721_LEGACY_INTERFACE_ID,
    ChainAPIError,
    ChainClient,
    ContractCallError,
)
from .models import NATIVE_CURRENCY_CONTRACT, TokenStandard, normalize_address

logger = logging.getLogger(__name__)


class ContractClassifier:
    """
    Determines the token standard of a contract.

    Probes run in order and stop at the first match: the ERC875 marker
    function, ERC165 support for ERC721, then decimals() for ERC20. A
    contract that matches nothing, or whose probes fail on the network,
    classifies as DELEGATE; classification itself never raises.
    """

    def __init__(self, client: ChainClient):
        self.client = client

    def classify(self, address: str) -> TokenStandard:
        if normalize_address(address) == NATIVE_CURRENCY_CONTRACT:
            return TokenStandard.NATIVE_CURRENCY

        try:
            return self._probe(address)
        except ChainAPIError as e:
            logger.debug("Classification of %s failed: %s", address, e)
            return TokenStandard.DELEGATE

    def _probe(self, address: str) -> TokenStandard:
        if self._answers_true(self.client.is_stormbird_contract, address):
            return TokenStandard.SEMI_FUNGIBLE

        for interface_id in (ERC721_INTERFACE_ID, ERC721_LEGACY_INTERFACE_ID):
            if self._answers_true(self.client.supports_interface, address, interface_id):
                return TokenStandard.NON_FUNGIBLE

        try:
            self.client.get_decimals(address)
        except ContractCallError:
            return TokenStandard.DELEGATE
        return TokenStandard.FUNGIBLE

    @staticmethod
    def _answers_true(probe, *args) -> bool:
        # A revert only means the contract lacks this function.
        try:
            return bool(probe(*args))
        except ContractCallError:
            return False
