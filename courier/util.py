import hashlib
from typing import BinaryIO, Callable, Iterable, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit


DEFAULT_CHUNK_SIZE = 81920


def get_host_from_url(url: str) -> str:
    """
    Extract `host[:port]` from a URL, dropping any userinfo. Lower-cased.
    """
    netloc = urlsplit(url).netloc
    host = netloc.rpartition('@')[2]
    return host.lower() if host else url


def url_hash(url: str) -> str:
    return hashlib.md5(url.lower().encode('utf-8')).hexdigest()


def split_userinfo(url: str) -> Tuple[str, Optional[str], Optional[str]]:
    """
    Remove `user:pass@` from a URL.

    @return
      The URL without userinfo, followed by the user name and password. The
      credentials are `None` unless the userinfo has exactly one colon.
    """
    parts = urlsplit(url)
    userinfo, at, host = parts.netloc.rpartition('@')
    if not at:
        return url, None, None

    stripped = urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))
    credentials = userinfo.split(':')
    if len(credentials) != 2:
        return stripped, None, None
    return stripped, credentials[0], credentials[1]


def is_absolute_url(url: str) -> bool:
    """
    True when `url` has a scheme and a host. Userinfo alone is not a host.
    """
    parts = urlsplit(url)
    if not parts.scheme or not parts.hostname:
        return False
    try:
        parts.port
    except ValueError:
        return False
    return True


def copy_chunks(chunks: Iterable[bytes], writer: BinaryIO,
                before_chunk: Optional[Callable[[], None]] = None) -> int:
    """
    Write every chunk to `writer`, calling `before_chunk` ahead of each one so
    that the copy can be interrupted by raising from it.

    @return
      The number of bytes written.
    """
    written = 0
    for chunk in chunks:
        if before_chunk is not None:
            before_chunk()
        if chunk:
            writer.write(chunk)
            written += len(chunk)
    return written


def read_chunks(reader: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterable[bytes]:
    while True:
        chunk = reader.read(chunk_size)
        if not chunk:
            return
        yield chunk
