"""
Asset definition (TokenScript) documents for token contracts.

Fetching is fire-and-forget: contract data fetches trigger a download of the
contract's asset definition, and subscribers are told when one changes.
"""

import logging
import threading
from typing import Callable, Dict, List, Optional

import requests

from .models import normalize_address

logger = logging.getLogger(__name__)

DEFAULT_REPO_URL = "https://repo.tokenscript.org/2019/10"
DEFAULT_TIMEOUT = 10.0  # seconds


class AssetDefinitionStore:
    """Downloads and caches asset definition XML by contract address."""

    def __init__(
        self,
        repo_url: str = DEFAULT_REPO_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.repo_url = repo_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self._lock = threading.Lock()
        self._documents: Dict[str, str] = {}
        self._subscribers: List[Callable[[str], None]] = []

    def subscribe(self, callback: Callable[[str], None]) -> None:
        """Call callback(contract) whenever a contract's definition changes."""
        with self._lock:
            self._subscribers.append(callback)

    def get(self, address: str) -> Optional[str]:
        with self._lock:
            return self._documents.get(normalize_address(address))

    def fetch_xml(self, address: str) -> Optional[str]:
        """
        Download the asset definition for a contract.

        Network errors are logged, not raised.

        Returns:
            The XML document, or None if there is none or it could not be fetched
        """
        key = normalize_address(address)
        url = f"{self.repo_url}/{key}"
        headers = {"Accept": "text/xml"}

        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.debug("Asset definition fetch failed for %s: %s", address, e)
            return None

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            logger.debug(
                "Asset definition fetch for %s returned %s", address, response.status_code
            )
            return None

        document = response.text
        with self._lock:
            changed = self._documents.get(key) != document
            self._documents[key] = document
            subscribers = list(self._subscribers)

        if changed:
            for callback in subscribers:
                callback(key)
        return document
