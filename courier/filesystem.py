from abc import ABC, abstractmethod
from dataclasses import dataclass
import os
from pathlib import Path
import shutil
from typing import BinaryIO


@dataclass(frozen=True)
class ApplicationPaths:
    """
    Where the client may keep files.
    """

    cache_path: Path
    """
    Root of the response cache. Entries live in a `httpclient` subdirectory.
    """

    temp_directory: Path
    """
    Directory for downloads handed to callers as temporary files.
    """


class FileSystem(ABC):
    """
    The file operations the client relies on.
    """

    @abstractmethod
    def get_last_write_time(self, path: Path) -> float:
        """
        @return
          The modification time of `path` as seconds since the epoch.
        @throws FileNotFoundError
          If `path` does not exist.
        """

    @abstractmethod
    def get_file_stream(self, path: Path, mode: str) -> BinaryIO:
        """
        Open `path` in the binary `mode` given (e.g. 'rb' or 'wb').
        """

    @abstractmethod
    def delete_file(self, path: Path) -> None:
        pass

    @abstractmethod
    def move_file(self, source: Path, destination: Path) -> None:
        """
        Move `source` over `destination`, replacing it if it exists.
        """


class LocalFileSystem(FileSystem):
    def get_last_write_time(self, path: Path) -> float:
        return os.stat(path).st_mtime

    def get_file_stream(self, path: Path, mode: str) -> BinaryIO:
        return open(path, mode)

    def delete_file(self, path: Path) -> None:
        Path(path).unlink()

    def move_file(self, source: Path, destination: Path) -> None:
        try:
            os.replace(source, destination)
        except OSError:
            # Different devices.
            shutil.move(str(source), str(destination))
