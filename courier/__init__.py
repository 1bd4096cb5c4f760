from .cancellation import CancellationToken
from .client import HttpClient, create
from .errors import ErrorKind, HttpError
from .filesystem import ApplicationPaths, FileSystem, LocalFileSystem
from .model import CacheMode, CompressionMethod, RequestSpec, ResponseInfo
