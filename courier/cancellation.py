"""
Cooperative cancellation for in-flight requests.

A `CancellationToken` is handed to the client inside a `RequestSpec`. The
client polls it at its suspension points and registers listeners on it, so
that cancelling from any thread aborts a send or an admission wait instead of
leaving it orphaned.
"""

import asyncio
import threading
from typing import Callable, List


class CancellationToken:
    """
    Thread-safe cancellation flag with listeners.
    """

    def __init__(self) -> None:
        self.__cancelled = threading.Event()
        self.__lock = threading.Lock()
        self.__listeners: List[Callable[[], None]] = []

    def cancel(self) -> None:
        with self.__lock:
            if self.__cancelled.is_set():
                return
            self.__cancelled.set()
            listeners = list(self.__listeners)
            self.__listeners.clear()
        for listener in listeners:
            listener()

    def is_cancelled(self) -> bool:
        return self.__cancelled.is_set()

    def register(self, listener: Callable[[], None]) -> Callable[[], None]:
        """
        Call `listener` once when the token is cancelled.

        If the token is already cancelled, `listener` is called right away.

        @return
          A function that removes the listener again. Calling it more than once is harmless.
        """
        with self.__lock:
            if not self.__cancelled.is_set():
                self.__listeners.append(listener)
                return lambda: self.__unregister(listener)
        listener()
        return lambda: None

    def __unregister(self, listener: Callable[[], None]) -> None:
        with self.__lock:
            if listener in self.__listeners:
                self.__listeners.remove(listener)


def on_cancel(token: CancellationToken, loop: asyncio.AbstractEventLoop,
              callback: Callable[[], None]) -> Callable[[], None]:
    """
    Run `callback` on `loop` when `token` is cancelled, whichever thread cancels it.
    """
    return token.register(lambda: loop.call_soon_threadsafe(callback))
