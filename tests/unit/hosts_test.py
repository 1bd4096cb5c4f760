from ddt import ddt, data, unpack
from unittest import TestCase

from courier.errors import ErrorKind, HttpError
from courier.hosts import CircuitBreaker, HostRegistry, TIMEOUT_SECONDS

from fakes import FakeClock


class TestHostRegistry(TestCase):
    def test_entries_are_created_once_per_host_and_compression(self):
        registry = HostRegistry()

        state = registry.get('example.com', True)

        self.assertIsNone(state.last_timeout_at)
        self.assertIs(state, registry.get('example.com', True))
        self.assertIsNot(state, registry.get('example.com', False))
        self.assertIsNot(state, registry.get('example.org', True))

    def test_empty_host_is_rejected(self):
        with self.assertRaises(ValueError):
            HostRegistry().get('', True)


@ddt
class TestCircuitBreaker(TestCase):
    def setUp(self):
        self.__clock = FakeClock()
        self.__sut = CircuitBreaker(HostRegistry(), clock=self.__clock)

    def test_unknown_host_is_allowed(self):
        self.__sut.check('example.com', True, 'http://example.com/x')

    @data(0, 1, 15, TIMEOUT_SECONDS - 0.001)
    def test_host_is_rejected_within_cooldown(self, elapsed):
        self.__sut.record_timeout('example.com', True)
        self.__clock.advance(elapsed)

        with self.assertRaises(HttpError) as context:
            self.__sut.check('example.com', True, 'http://example.com/x')

        self.assertIs(ErrorKind.TIMED_OUT, context.exception.kind)
        self.assertTrue(context.exception.is_timed_out)
        self.assertEqual('http://example.com/x', context.exception.url)

    @data(TIMEOUT_SECONDS, TIMEOUT_SECONDS + 1, 3600)
    def test_host_is_allowed_after_cooldown(self, elapsed):
        self.__sut.record_timeout('example.com', True)
        self.__clock.advance(elapsed)

        self.__sut.check('example.com', True, 'http://example.com/x')

    @data(
        ('example.com', False),
        ('example.org', True),
    )
    @unpack
    def test_other_keys_are_unaffected(self, host, enable_compression):
        self.__sut.record_timeout('example.com', True)

        self.assertFalse(self.__sut.is_open(host, enable_compression))

    def test_a_later_timeout_extends_the_cooldown(self):
        self.__sut.record_timeout('example.com', True)
        self.__clock.advance(20)
        self.__sut.record_timeout('example.com', True)
        self.__clock.advance(20)

        self.assertTrue(self.__sut.is_open('example.com', True))
