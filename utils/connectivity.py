from __future__ import annotations

import logging
from typing import Callable, List

logger = logging.getLogger(__name__)

ConnectivityCallback = Callable[[bool], None]


class ConnectivityState:
    """Online/offline flag with edge-triggered change callbacks.

    One instance stands in for the host's network-reachability signal and is
    passed to whoever needs it. Callbacks run only when the value flips.
    """

    def __init__(self, online: bool = True):
        self._online = bool(online)
        self._callbacks: List[ConnectivityCallback] = []

    def is_online(self) -> bool:
        return self._online

    def on_change(self, callback: ConnectivityCallback) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def set_online(self, online: bool) -> bool:
        """Record the latest signal; returns True when it was a transition."""
        online = bool(online)
        if online == self._online:
            return False
        self._online = online
        logger.info("Connectivity changed: %s", "online" if online else "offline")
        for callback in list(self._callbacks):
            callback(online)
        return True
