from abc import ABC, abstractmethod
from datetime import timedelta
import logging
from pathlib import Path
import time
import uuid
from typing import Callable, Optional

from .filesystem import ApplicationPaths, FileSystem
from .model import ResponseInfo
from .util import read_chunks, url_hash


logger = logging.getLogger(__name__)


class Cache(ABC):
    """
    An abstraction of a response cache.

    A response cache has a relatively narrow scope: to remember a response body such that it can be recalled later for
    the same URL. Entries are never invalidated explicitly. Callers decide how long an entry stays fresh at lookup
    time, and a stale entry is simply overwritten by the next successful fetch.
    """

    @abstractmethod
    def get(self, url: str, cache_length: timedelta) -> Optional[ResponseInfo]:
        """
        Retrieve a cached response for `url`.

        @param url
          The requested URL. Lookups are case-insensitive.
        @param cache_length
          How long after it was written an entry stays fresh.
        @return
          A 200 response whose content is the cached body, or `None` if there is no fresh entry.
        """

    @abstractmethod
    def add(self, response: ResponseInfo, url: str) -> None:
        """
        Store the body of `response` for `url`.

        Only 200 responses should be added. The content stream of `response` is read in full and then rewound, so it
        must be seekable, and the caller can keep using it afterwards.

        @throws OSError
          If the entry could not be written.
        """


class FileCache(Cache):
    """
    Keeps each response body in its own file, named after a hash of the URL.

    Freshness is taken from the file's modification time; there is no metadata besides the body.
    """

    def __init__(self, app_paths: ApplicationPaths, file_system: FileSystem,
                 clock: Callable[[], float] = time.time) -> None:
        self.__directory = Path(app_paths.cache_path) / 'httpclient'
        self.__file_system = file_system
        self.__clock = clock

    def get_path(self, url: str) -> Path:
        return self.__directory / url_hash(url)

    def get(self, url: str, cache_length: timedelta) -> Optional[ResponseInfo]:
        path = self.get_path(url)
        try:
            last_write_time = self.__file_system.get_last_write_time(path)
        except FileNotFoundError:
            logger.debug('No cache entry for {}'.format(url))
            return None

        if last_write_time + cache_length.total_seconds() <= self.__clock():
            logger.debug('Cache entry for {} is stale'.format(url))
            return None

        try:
            stream = self.__file_system.get_file_stream(path, 'rb')
        except FileNotFoundError:
            # Deleted between the two calls.
            return None

        stream.seek(0, 2)
        length = stream.tell()
        stream.seek(0)
        logger.debug('Serving {} from cache entry {}'.format(url, path))
        return ResponseInfo(
            status_code=200,
            content=stream,
            content_length=length,
            response_url=url,
        )

    def add(self, response: ResponseInfo, url: str) -> None:
        path = self.get_path(url)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Written beside the entry and moved into place, so readers never see a partial body.
        temp_path = path.with_name('{}.{}.partial'.format(path.name, uuid.uuid4().hex))
        logger.debug('Writing cache entry for {} to {}'.format(url, path))
        try:
            with self.__file_system.get_file_stream(temp_path, 'wb') as f:
                for chunk in read_chunks(response.content):
                    f.write(chunk)
            self.__file_system.move_file(temp_path, path)
        except OSError:
            try:
                self.__file_system.delete_file(temp_path)
            except FileNotFoundError:
                pass
            raise
        finally:
            response.content.seek(0)
