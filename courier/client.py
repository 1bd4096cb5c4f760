import asyncio
from concurrent.futures import Executor
import functools
from io import BytesIO
import logging
from pathlib import Path
import threading
from typing import BinaryIO, Callable, Mapping, Optional
import uuid

import requests
from requests.structures import CaseInsensitiveDict
from urllib3.exceptions import NewConnectionError
from urllib3.response import HTTPResponse

from .cache import Cache, FileCache
from .cancellation import CancellationToken, on_cancel
from .errors import HttpError
from .filesystem import ApplicationPaths, FileSystem, LocalFileSystem
from .hosts import CircuitBreaker, HostRegistry
from .model import CacheMode, RequestSpec, ResponseInfo
from .request import RequestBuilder
from .transport import RequestCancelled, RequestTimeout, Transport
from .util import DEFAULT_CHUNK_SIZE, copy_chunks, get_host_from_url, is_absolute_url, split_userinfo


logger = logging.getLogger(__name__)


class HttpClient:
    """
    Sends requests on behalf of the rest of the application.

    Around each request the client refuses hosts that recently timed out,
    serves and fills the response cache, holds the caller's admission slot,
    and turns every failure into an `HttpError`.
    """

    def __init__(self,
                 app_paths: ApplicationPaths,
                 file_system: Optional[FileSystem] = None,
                 default_user_agent: Optional[Callable[[], str]] = None,
                 transport: Optional[Transport] = None,
                 cache: Optional[Cache] = None,
                 circuit_breaker: Optional[CircuitBreaker] = None,
                 executor: Optional[Executor] = None,
                 log: Optional[logging.Logger] = None) -> None:
        if app_paths is None:
            raise ValueError('app_paths is required')

        self.__app_paths = app_paths
        self.__file_system = file_system or LocalFileSystem()
        self.__builder = RequestBuilder(default_user_agent)
        self.__transport = transport or Transport(executor=executor)
        self.__cache = cache or FileCache(app_paths, self.__file_system)
        self.__circuit_breaker = circuit_breaker or CircuitBreaker(HostRegistry())
        self.__executor = executor
        self.__logger = log or logger

    # region Public operations

    async def send(self, spec: RequestSpec, method: str) -> ResponseInfo:
        """
        Send a request and return the response.

        @throws ValueError
          If the URL is empty or not absolute. Nothing is sent.
        @throws HttpError
          For every other failure.
        """
        self._validate(spec)

        host = get_host_from_url(spec.url)
        use_cache = spec.cache_mode is not CacheMode.NONE
        pool = spec.resource_pool
        acquired = False
        try:
            self._throw_if_cancelled(spec)
            self.__circuit_breaker.check(host, spec.enable_http_compression, spec.url)

            if use_cache:
                cached = await self._run(self.__cache.get, spec.url, spec.cache_length)
                if cached is not None:
                    return cached

            request = self.__builder.build(spec, method)

            if pool is not None:
                await self._acquire(pool, spec.cancellation)
                acquired = True

            # Another request may have timed out while this one waited for its slot.
            self.__circuit_breaker.check(host, spec.enable_http_compression, spec.url)

            if use_cache and pool is not None:
                # Or filled the cache.
                cached = await self._run(self.__cache.get, spec.url, spec.cache_length)
                if cached is not None:
                    return cached

            self._log_request(spec, method)
            self._throw_if_cancelled(spec)

            response = await self.__transport.send(request, spec.cancellation)
            result = await self._read_response(response, spec, buffer=spec.buffer_content or use_cache)

            if use_cache and result.status_code == 200:
                await self._cache_response(result, spec.url)
            return result
        except Exception as e:
            error = self._get_exception(e, spec, host)
            if error is e:
                raise
            raise error from e
        finally:
            if acquired:
                pool.release()

    async def get_response(self, spec: RequestSpec) -> ResponseInfo:
        return await self.send(spec, 'GET')

    async def get(self, spec: RequestSpec) -> BinaryIO:
        """
        Perform a GET request and return the response body.
        """
        response = await self.get_response(spec)
        return response.content

    async def post(self, spec: RequestSpec) -> ResponseInfo:
        return await self.send(spec, 'POST')

    async def post_form(self, spec: RequestSpec, fields: Mapping[str, str]) -> BinaryIO:
        """
        POST `fields` form-encoded and return the response body.
        """
        response = await self.post(spec.with_post_data(fields))
        return response.content

    async def get_temp_file(self, spec: RequestSpec) -> Path:
        response = await self.get_temp_file_response(spec)
        return response.temp_file_path

    async def get_temp_file_response(self, spec: RequestSpec) -> ResponseInfo:
        """
        Download the contents of a URL into a new temporary file.

        `spec.progress` receives 0 before the download starts and 100 once it
        is complete. The file belongs to the caller afterwards. If anything
        fails, the file is deleted.

        @throws ValueError
          If the URL is invalid or `spec.progress` is missing.
        @throws HttpError
          For every other failure.
        """
        self._validate(spec)
        if spec.progress is None:
            raise ValueError('A progress callback is required to download to a temp file')

        temp_directory = Path(self.__app_paths.temp_directory)
        temp_file = temp_directory / '{}.tmp'.format(uuid.uuid4())

        host = get_host_from_url(spec.url)
        pool = spec.resource_pool
        acquired = False
        aborted = threading.Event()
        try:
            temp_directory.mkdir(parents=True, exist_ok=True)
            self._throw_if_cancelled(spec)
            self.__circuit_breaker.check(host, spec.enable_http_compression, spec.url)

            request = self.__builder.build(spec, 'GET')

            if pool is not None:
                await self._acquire(pool, spec.cancellation)
                acquired = True

            self.__circuit_breaker.check(host, spec.enable_http_compression, spec.url)

            spec.progress(0)
            self._log_request(spec, 'GET')
            self._throw_if_cancelled(spec)

            response = await self.__transport.send(request, spec.cancellation)
            try:
                await self._ensure_success_status_code(response, spec)
                self._throw_if_cancelled(spec)
                await self._run(self._write_temp_file, response, temp_file, spec.cancellation, aborted)
            finally:
                response.close()

            spec.progress(100)
            return ResponseInfo(
                status_code=response.status_code,
                temp_file_path=temp_file,
                content_length=_get_content_length(response),
                content_type=response.headers.get('Content-Type'),
                headers=CaseInsensitiveDict(response.headers),
                response_url=response.url,
            )
        except Exception as e:
            self._delete_temp_file(temp_file)
            error = self._get_exception(e, spec, host)
            if error is e:
                raise
            raise error from e
        except asyncio.CancelledError:
            aborted.set()
            self._delete_temp_file(temp_file)
            raise
        finally:
            if acquired:
                pool.release()

    def close(self) -> None:
        self.__transport.close()

    # endregion

    def _validate(self, spec: RequestSpec) -> None:
        if not spec.url:
            raise ValueError('url must not be empty')
        if not is_absolute_url(spec.url):
            raise ValueError('url must be absolute: {}'.format(spec.url))

    def _throw_if_cancelled(self, spec: RequestSpec) -> None:
        if spec.cancellation is not None and spec.cancellation.is_cancelled():
            raise RequestCancelled()

    def _log_request(self, spec: RequestSpec, method: str) -> None:
        if not spec.log_request:
            return
        level = logging.DEBUG if spec.log_request_as_debug else logging.INFO
        self.__logger.log(level, 'HttpClient {}: {}'.format(method.upper(), split_userinfo(spec.url)[0]))

    async def _run(self, function, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.__executor, functools.partial(function, *args))

    async def _acquire(self, pool: asyncio.Semaphore, cancellation: Optional[CancellationToken]) -> None:
        """
        Wait for a slot in `pool`, giving up if `cancellation` fires first.

        @throws RequestCancelled
          If the wait was cancelled. No slot is held in that case.
        """
        if cancellation is None:
            await pool.acquire()
            return
        if cancellation.is_cancelled():
            raise RequestCancelled()

        loop = asyncio.get_running_loop()
        acquiring = asyncio.ensure_future(pool.acquire())
        unregister = on_cancel(cancellation, loop, acquiring.cancel)
        try:
            await asyncio.wait({acquiring})
        except asyncio.CancelledError:
            if acquiring.done() and not acquiring.cancelled():
                pool.release()
            else:
                acquiring.cancel()
            raise
        finally:
            unregister()

        if acquiring.cancelled():
            raise RequestCancelled()

    async def _read_response(self, response: requests.Response, spec: RequestSpec, buffer: bool) -> ResponseInfo:
        streaming = False
        try:
            await self._ensure_success_status_code(response, spec)
            self._throw_if_cancelled(spec)

            if buffer:
                content = await self._run(lambda: response.content)
                return self._get_response_info(response, BytesIO(content), len(content), None)

            raw = response.raw
            if isinstance(raw, HTTPResponse):
                raw.decode_content = True
            streaming = True
            return self._get_response_info(response, raw, _get_content_length(response), response)
        finally:
            if not streaming:
                response.close()

    def _get_response_info(self, response: requests.Response, content: BinaryIO,
                           content_length: Optional[int], disposable) -> ResponseInfo:
        return ResponseInfo(
            status_code=response.status_code,
            content=content,
            content_length=content_length,
            content_type=response.headers.get('Content-Type'),
            headers=CaseInsensitiveDict(response.headers),
            response_url=response.url,
            disposable=disposable,
        )

    async def _ensure_success_status_code(self, response: requests.Response, spec: RequestSpec) -> None:
        if 200 <= response.status_code <= 299:
            return

        body = None
        if spec.log_error_response_body:
            try:
                body = await self._run(lambda: response.text)
                self.__logger.error(body)
            except (requests.RequestException, OSError) as e:
                self.__logger.debug('Could not read error response body from {}: {}'.format(spec.url, e))

        raise HttpError.status(spec.url, response.status_code, response.reason, body)

    async def _cache_response(self, response: ResponseInfo, url: str) -> None:
        try:
            await self._run(self.__cache.add, response, url)
        except OSError as e:
            self.__logger.warning('Failed to cache response for {}: {}'.format(url, e))

    def _write_temp_file(self, response: requests.Response, path: Path,
                         cancellation: Optional[CancellationToken], aborted: threading.Event) -> None:
        def before_chunk():
            if aborted.is_set() or (cancellation is not None and cancellation.is_cancelled()):
                raise RequestCancelled()

        try:
            with self.__file_system.get_file_stream(path, 'wb') as f:
                copy_chunks(response.iter_content(DEFAULT_CHUNK_SIZE), f, before_chunk)
        except BaseException:
            self._delete_temp_file(path)
            raise

    def _delete_temp_file(self, path: Path) -> None:
        try:
            self.__file_system.delete_file(path)
        except OSError:
            # Might not have been created at all.
            pass

    def _get_exception(self, e: Exception, spec: RequestSpec, host: str) -> HttpError:
        """
        Classify `e` as an `HttpError`, updating the host's state on the way.
        """
        if isinstance(e, HttpError):
            if e.status_code is not None:
                if spec.log_errors:
                    self.__logger.error('Error {} getting response from {}'.format(e.status_code, spec.url))
                if e.status_code == 429:
                    self.__circuit_breaker.record_timeout(host, spec.enable_http_compression)
            return e

        if isinstance(e, RequestCancelled):
            return HttpError.cancelled(spec.url)

        if isinstance(e, (RequestTimeout, requests.Timeout)) or _is_connect_failure(e):
            error = HttpError.timed_out(spec.url)
            if spec.log_errors:
                self.__logger.error(str(error))
            self.__circuit_breaker.record_timeout(host, spec.enable_http_compression)
            return error

        if spec.log_errors:
            self.__logger.error('Error getting response from {}'.format(spec.url), exc_info=e)
        return HttpError.transport(spec.url, e)


def _get_content_length(response: requests.Response) -> Optional[int]:
    try:
        length = int(response.headers.get('Content-Length', 0))
    except ValueError:
        return None
    return length or None


def _is_connect_failure(e: Exception) -> bool:
    """
    True for name resolution and connection failures.
    """
    if not isinstance(e, requests.ConnectionError):
        return False
    reason = e.args[0] if e.args else None
    reason = getattr(reason, 'reason', reason)
    return isinstance(reason, NewConnectionError)


def create(app_paths: ApplicationPaths, default_user_agent: Optional[Callable[[], str]] = None) -> HttpClient:
    return HttpClient(app_paths, LocalFileSystem(), default_user_agent)
