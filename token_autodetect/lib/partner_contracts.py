"""
Curated partner token contracts checked on every detection run.

Each entry is a (name, contract) pair. Only mainnet and xDai have lists.
"""

from typing import Dict, List, Optional, Sequence, Tuple

PartnerContract = Tuple[str, str]

MAINNET_PARTNER_CONTRACTS: List[PartnerContract] = [
    ("DGX", "0x4f3afec4e5a3f2a6a1a411def7d7dfe50ee057bf"),
    ("DAI", "0x89d24a6b4ccb1b6faa2625fe562bdd9a23260359"),
    ("MKR", "0x9f8f72aa9304c8b593d555f12ef6589cc3a579a2"),
]

# Promotional list from the ETHDenver xDai event
XDAI_PARTNER_CONTRACTS: List[PartnerContract] = [
    ("DEN", "0x6a814843de5967cf94d7720ce15cba8b0da81967"),
    ("BURN", "0x94819805310cf11feb8ab5b1bb6ba6d8f7a8f5e6"),
    ("BURN", "0xdec31651bec1fbbff392aa7de956d6ee4559498b"),
    ("BURN", "0xa95d505e6933cb790ed3431805871efe4e6bbafd"),
    ("DEN", "0xbdc3df563a3959a373916b724c683d69ba4097f7"),
    ("DEN", "0x6e251ee9cadf0145babfd3b64664a9d7f941fcc3"),
    ("BUFF", "0x3e50bf6703fc132a94e4baff068db2055655f11b"),
]

PARTNER_CONTRACTS_BY_NETWORK: Dict[str, List[PartnerContract]] = {
    "main": MAINNET_PARTNER_CONTRACTS,
    "xdai": XDAI_PARTNER_CONTRACTS,
}


def partner_contracts_for(
    network: str, overrides: Optional[Dict[str, Sequence[PartnerContract]]] = None
) -> List[PartnerContract]:
    """
    Get the curated contract list for a network.

    Args:
        network: Network name
        overrides: Lists replacing the built-in ones, keyed by network

    Returns:
        The network's list; empty for networks without one
    """
    lists = PARTNER_CONTRACTS_BY_NETWORK if overrides is None else overrides
    return list(lists.get(network, []))
