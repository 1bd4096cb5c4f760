from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    TIMED_OUT = 'timed_out'
    HTTP_STATUS = 'http_status'
    CANCELLED = 'cancelled'
    TRANSPORT = 'transport'


class HttpError(Exception):
    """
    The single error type raised by `HttpClient` for a failed request.

    `kind` says what went wrong. `TIMED_OUT` errors are worth retrying later,
    `HTTP_STATUS` errors carry the numeric `status_code`, and `TRANSPORT`
    errors chain the original exception as `__cause__`.
    """

    def __init__(self, message: str, kind: ErrorKind, url: Optional[str] = None,
                 status_code: Optional[int] = None, body: Optional[str] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.url = url
        self.status_code = status_code
        self.body = body

    @property
    def is_timed_out(self) -> bool:
        return self.kind is ErrorKind.TIMED_OUT

    @property
    def inner(self) -> Optional[BaseException]:
        return self.__cause__

    @classmethod
    def timed_out(cls, url: str, message: Optional[str] = None) -> 'HttpError':
        return cls(message or 'Connection to {} timed out'.format(url), ErrorKind.TIMED_OUT, url=url)

    @classmethod
    def status(cls, url: str, status_code: int, reason: Optional[str] = None,
               body: Optional[str] = None) -> 'HttpError':
        message = '{} {}'.format(status_code, reason) if reason else str(status_code)
        return cls(message, ErrorKind.HTTP_STATUS, url=url, status_code=status_code, body=body)

    @classmethod
    def cancelled(cls, url: str) -> 'HttpError':
        return cls('Request to {} was cancelled'.format(url), ErrorKind.CANCELLED, url=url)

    @classmethod
    def transport(cls, url: str, inner: BaseException) -> 'HttpError':
        return cls(str(inner) or type(inner).__name__, ErrorKind.TRANSPORT, url=url)
