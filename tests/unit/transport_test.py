import asyncio
import threading
from unittest import IsolatedAsyncioTestCase

import requests

from courier.cancellation import CancellationToken
from courier.request import TransportRequest
from courier.transport import RequestCancelled, RequestTimeout, Transport

from fakes import FakeResponse, ScriptedSession, blocking


def _request(timeout: float = 5.0) -> TransportRequest:
    prepared = requests.Request('GET', 'http://example.com/x').prepare()
    return TransportRequest(prepared=prepared, timeout=timeout)


class TestTransport(IsolatedAsyncioTestCase):
    def setUp(self):
        self.gate = threading.Event()

    def tearDown(self):
        # Let any sender still parked in the executor finish.
        self.gate.set()

    async def test_success(self):
        response = FakeResponse(body=b'hello')
        session = ScriptedSession(response)

        result = await Transport(session).send(_request(timeout=3.0))

        self.assertIs(response, result)
        prepared, kw = session.sent[0]
        self.assertEqual('http://example.com/x', prepared.url)
        self.assertEqual({'stream': True, 'timeout': 3.0, 'allow_redirects': True}, kw)

    async def test_failure_is_passed_through(self):
        session = ScriptedSession(requests.ConnectionError('refused'))

        with self.assertRaises(requests.ConnectionError):
            await Transport(session).send(_request())

    async def test_timeout_aborts_the_send(self):
        late = FakeResponse()
        session = ScriptedSession(blocking(self.gate, late))

        with self.assertRaises(RequestTimeout):
            await Transport(session).send(_request(timeout=0.05))

        # The response that shows up afterwards is discarded.
        self.gate.set()
        for _ in range(100):
            if late.close_count:
                break
            await asyncio.sleep(0.01)
        self.assertEqual(1, late.close_count)

    async def test_cancellation_aborts_the_send(self):
        token = CancellationToken()
        session = ScriptedSession(blocking(self.gate, FakeResponse()))
        loop = asyncio.get_running_loop()
        loop.call_later(0.05, token.cancel)

        with self.assertRaises(RequestCancelled):
            await Transport(session).send(_request(), token)

    async def test_cancellation_from_another_thread(self):
        token = CancellationToken()
        session = ScriptedSession(blocking(self.gate, FakeResponse()))
        threading.Timer(0.05, token.cancel).start()

        with self.assertRaises(RequestCancelled):
            await Transport(session).send(_request(), token)

    async def test_already_cancelled_token(self):
        token = CancellationToken()
        token.cancel()
        session = ScriptedSession(blocking(self.gate, FakeResponse()))

        with self.assertRaises(RequestCancelled):
            await Transport(session).send(_request(), token)

    async def test_only_the_first_outcome_counts(self):
        token = CancellationToken()
        response = FakeResponse()
        session = ScriptedSession(response)

        result = await Transport(session).send(_request(timeout=0.2), token)
        token.cancel()
        await asyncio.sleep(0.3)

        self.assertIs(response, result)
        self.assertEqual(0, response.close_count)

    async def test_close_closes_the_session(self):
        session = ScriptedSession()

        Transport(session).close()

        self.assertTrue(session.closed)
