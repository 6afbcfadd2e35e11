"""
Single-flight guard for detection passes.
"""

import threading


class SingleFlightGate:
    """
    Admits at most one detection pass of a kind at a time.

    A pass that cannot acquire the gate is dropped by its caller, not queued.
    """

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._in_flight

    def try_acquire(self) -> bool:
        """Mark a pass as running. Returns False if one already is."""
        with self._lock:
            if self._in_flight:
                return False
            self._in_flight = True
            return True

    def release(self) -> None:
        with self._lock:
            self._in_flight = False

    def __repr__(self) -> str:
        return f"SingleFlightGate({self.name!r}, in_flight={self.in_flight})"
