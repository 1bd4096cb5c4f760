"""
Defines the types exchanged with callers of the HTTP client.

These types are as simple as possible in order to most conveniently consume and
produce instances of them.
"""

import asyncio
from dataclasses import dataclass, field, replace
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any, BinaryIO, Callable, Mapping, Optional
from urllib.parse import urlencode

from requests.structures import CaseInsensitiveDict

from .cancellation import CancellationToken


DEFAULT_CONTENT_TYPE = 'application/x-www-form-urlencoded'


class CacheMode(Enum):
    NONE = 'none'
    TTL = 'ttl'


class CompressionMethod(Enum):
    DEFLATE = 'deflate'
    GZIP = 'gzip'


@dataclass(frozen=True)
class RequestSpec:
    """
    Describes a single outbound request and how it should be handled.

    A spec is immutable per call. Use `dataclasses.replace()` or
    `with_post_data()` to derive a variant.
    """

    url: str
    """
    The absolute URL of the resource. May embed `user:pass@` credentials.
    """

    headers: Mapping[str, str] = field(default_factory=CaseInsensitiveDict, hash=False)
    """
    Headers sent with the request. `Accept` and `User-Agent` get special treatment.
    """

    request_content: Optional[str] = None
    request_content_bytes: Optional[bytes] = None
    request_content_type: Optional[str] = None

    timeout: float = 20.0
    """
    Seconds to wait for the response before the request is aborted.
    """

    enable_http_compression: bool = True
    decompression_method: CompressionMethod = CompressionMethod.DEFLATE
    enable_keep_alive: bool = True
    buffer_content: bool = True
    append_charset_to_mime_type: bool = False
    enable_default_user_agent: bool = False

    log_request: bool = True
    log_request_as_debug: bool = False
    log_errors: bool = True
    log_error_response_body: bool = False

    host: Optional[str] = None
    referer: Optional[str] = None

    cache_mode: CacheMode = CacheMode.NONE
    cache_length: timedelta = timedelta(0)

    resource_pool: Optional[asyncio.Semaphore] = field(default=None, compare=False)
    """
    A caller-owned concurrency limiter. Acquired before sending and always released.
    """

    progress: Optional[Callable[[float], Any]] = field(default=None, compare=False)
    """
    Receives a percentage during temp file downloads.
    """

    cancellation: Optional[CancellationToken] = field(default=None, compare=False)

    def with_post_data(self, fields: Mapping[str, str]) -> 'RequestSpec':
        return replace(self, request_content=urlencode(list(fields.items())),
                       request_content_bytes=None, request_content_type=DEFAULT_CONTENT_TYPE)


@dataclass
class ResponseInfo:
    """
    The outcome of an exchange with a server.

    Exactly one of `content` and `temp_file_path` is set. Ownership of either
    passes to the caller, who should `close()` the response (or use it as a
    context manager) to release the backing transport resources.
    """

    status_code: int
    content: Optional[BinaryIO] = field(default=None, compare=False)
    temp_file_path: Optional[Path] = None

    content_length: Optional[int] = None
    """
    The body size in bytes, or `None` if the server did not say.
    """

    content_type: Optional[str] = None
    headers: Mapping[str, str] = field(default_factory=CaseInsensitiveDict)

    response_url: Optional[str] = None
    """
    The final URL of the resource, after any redirects.
    """

    disposable: Optional[Any] = field(default=None, compare=False, repr=False)

    def close(self) -> None:
        if self.content is not None:
            self.content.close()
        if self.disposable is not None:
            self.disposable.close()
            self.disposable = None

    def __enter__(self) -> 'ResponseInfo':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
