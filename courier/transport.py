import asyncio
from concurrent.futures import Executor
import functools
import logging
from typing import Optional

import requests
from requests.adapters import HTTPAdapter

from .cancellation import CancellationToken, on_cancel
from .request import TransportRequest


logger = logging.getLogger(__name__)


class RequestTimeout(Exception):
    """
    The send did not complete within its timeout and was abandoned.
    """


class RequestCancelled(Exception):
    """
    The caller cancelled the request through its cancellation token.
    """


class Transport:
    """
    Sends prepared requests with `requests`, without blocking the event loop.

    `requests` has its own socket timeouts but cannot be interrupted once a
    send is in flight. `send()` therefore races the blocking call, running in
    an executor, against a timer and the caller's cancellation token. The
    first outcome settles the result; whatever happens later is discarded, and
    a response that arrives too late is closed.

    A timed out or cancelled send is abandoned, not aborted: its worker keeps
    running in the executor, holding a pooled connection, until `requests`
    returns or hits the socket timeout passed to it.
    """

    def __init__(self, session: Optional[requests.Session] = None,
                 executor: Optional[Executor] = None) -> None:
        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter()
            session.mount('http://', adapter)
            session.mount('https://', adapter)
        self.session = session
        self.executor = executor

    async def send(self, request: TransportRequest,
                   cancellation: Optional[CancellationToken] = None) -> requests.Response:
        """
        Send `request` and wait for the response headers.

        The body is not read; the returned response streams it.

        @throws RequestTimeout
          If no response arrived within `request.timeout` seconds.
        @throws RequestCancelled
          If `cancellation` fired first.
        @throws requests.RequestException
          If `requests` itself failed.
        """
        loop = asyncio.get_running_loop()
        result = loop.create_future()

        def settle(value=None, error: Optional[BaseException] = None) -> bool:
            if result.done():
                return False
            if error is not None:
                result.set_exception(error)
            else:
                result.set_result(value)
            return True

        def on_sent(sending: asyncio.Future) -> None:
            if sending.cancelled():
                return
            error = sending.exception()
            if error is not None:
                settle(error=error)
            elif not settle(sending.result()):
                logger.debug('Discarding late response for {}'.format(request.prepared.url))
                sending.result().close()

        def on_timeout() -> None:
            if settle(error=RequestTimeout('Connection to {} timed out'.format(request.prepared.url))):
                logger.debug('Aborted request to {} after {}s'.format(request.prepared.url, request.timeout))

        sending = loop.run_in_executor(
            self.executor,
            functools.partial(self.session.send, request.prepared,
                              stream=True, timeout=request.timeout, allow_redirects=True))
        sending.add_done_callback(on_sent)
        timer = loop.call_later(request.timeout, on_timeout)
        unregister = None
        if cancellation is not None:
            unregister = on_cancel(cancellation, loop, lambda: settle(error=RequestCancelled()))

        try:
            return await result
        finally:
            timer.cancel()
            if unregister is not None:
                unregister()

    def close(self) -> None:
        self.session.close()
