"""
Network reachability probe.

A failed contract read means "dead contract" only if the device was online
when it failed, so fetch failures sample this probe.
"""

import logging
from typing import Callable, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_PROBE_URL = "https://www.google.com"
DEFAULT_PROBE_TIMEOUT = 3.0  # seconds

ReachabilityProbe = Callable[[], Optional[bool]]


class NetworkReachability:
    """
    Checks whether the network is reachable with a HEAD request.

    Instances are callable, so they can be passed wherever a
    ReachabilityProbe is expected.
    """

    def __init__(
        self,
        url: str = DEFAULT_PROBE_URL,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def is_reachable(self) -> Optional[bool]:
        """
        Returns:
            True if any HTTP response came back, False on connection errors
            and timeouts, None if reachability could not be determined
        """
        try:
            self.session.head(self.url, timeout=self.timeout, allow_redirects=False)
            return True
        except (requests.ConnectionError, requests.Timeout):
            return False
        except requests.RequestException as e:
            logger.debug("Reachability unknown: %s", e)
            return None

    def __call__(self) -> Optional[bool]:
        return self.is_reachable()
