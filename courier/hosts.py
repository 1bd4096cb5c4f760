from dataclasses import dataclass
import logging
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from .errors import HttpError


logger = logging.getLogger(__name__)


TIMEOUT_SECONDS = 30
"""
When one request to a host times out, all other requests to it are refused for
this long, so that a slow host cannot stall every caller in turn.
"""


@dataclass
class HostState:
    last_timeout_at: Optional[float] = None


class HostRegistry:
    """
    Per-host state, keyed by host and whether compression was requested.

    Entries are created on first use and live as long as the registry.
    """

    def __init__(self) -> None:
        self.__states: Dict[Tuple[str, bool], HostState] = {}
        self.__lock = threading.Lock()

    def get(self, host: str, enable_compression: bool) -> HostState:
        if not host:
            raise ValueError('host must not be empty')

        key = (host, enable_compression)
        with self.__lock:
            state = self.__states.get(key)
            if state is None:
                state = HostState()
                self.__states[key] = state
            return state


class CircuitBreaker:
    def __init__(self, registry: HostRegistry, cooldown: float = TIMEOUT_SECONDS,
                 clock: Callable[[], float] = time.monotonic) -> None:
        self.__registry = registry
        self.__cooldown = cooldown
        self.__clock = clock

    def is_open(self, host: str, enable_compression: bool) -> bool:
        last_timeout_at = self.__registry.get(host, enable_compression).last_timeout_at
        return last_timeout_at is not None and self.__clock() - last_timeout_at < self.__cooldown

    def check(self, host: str, enable_compression: bool, url: str) -> None:
        """
        @throws HttpError
          A timed out error for `url` if `host` timed out within the cool-down.
        """
        if self.is_open(host, enable_compression):
            logger.info('Refusing request to {} while {} cools down'.format(url, host))
            raise HttpError.timed_out(url, 'Cancelling connection to {} due to a previous timeout.'.format(url))

    def record_timeout(self, host: str, enable_compression: bool) -> None:
        # Last writer wins; only the freshest timestamp matters.
        self.__registry.get(host, enable_compression).last_timeout_at = self.__clock()
