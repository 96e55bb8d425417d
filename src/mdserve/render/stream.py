"""Seekable page stream that compiles its document on first use.

Clients usually revalidate cached pages with ``If-Modified-Since``. Answering
those only needs the file's modification time, so the stream is created from a
``stat`` call alone and the file is read and compiled the first time somebody
actually reads from or seeks into it. A ``304`` response therefore never costs
a file read or a markdown render.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path

from mdserve.errors import DocumentNotFound
from mdserve.models import PageOptions
from mdserve.render.compiler import compile_document

LOGGER = logging.getLogger(__name__)


def _read_source(path: Path) -> bytes:
    return path.read_bytes()


class LazyContentStream(io.IOBase):
    """Read-only, seekable view over one document's compiled page.

    The stream has two states. It starts unmaterialized, knowing only the
    path and modification time; :meth:`initialize` reads and compiles the file
    once and every later call reuses the compiled bytes. All read and seek
    entry points go through :meth:`initialize`.
    """

    def __init__(self, path: Path, options: PageOptions, *, mtime: float) -> None:
        super().__init__()
        self.path = Path(path)
        self.options = options
        self.mtime = mtime
        self._data: bytes | None = None
        self._position = 0

    @classmethod
    def open(cls, path: Path, options: PageOptions) -> "LazyContentStream":
        """Stat ``path`` and return an unmaterialized stream for it.

        Raises :class:`DocumentNotFound` when the file does not exist; any
        other stat failure propagates as :class:`OSError`.
        """
        path = Path(path)
        try:
            stat = path.stat()
        except FileNotFoundError as exc:
            raise DocumentNotFound(str(path)) from exc
        return cls(path, options, mtime=stat.st_mtime)

    @property
    def materialized(self) -> bool:
        return self._data is not None

    def initialize(self) -> None:
        """Read and compile the document unless that already happened."""
        if self._data is not None:
            return
        if self.closed:
            raise ValueError("I/O operation on closed stream")
        content = _read_source(self.path)
        self._data = compile_document(self.path.name, self.options.theme, content)
        LOGGER.debug("Compiled %s (%d bytes)", self.path, len(self._data))

    def _materialized_data(self) -> bytes:
        self.initialize()
        assert self._data is not None
        return self._data

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def writable(self) -> bool:
        return False

    def size(self) -> int:
        return len(self._materialized_data())

    def read(self, size: int | None = -1) -> bytes:
        data = self._materialized_data()
        if size is None or size < 0:
            end = len(data)
        else:
            end = min(self._position + size, len(data))
        chunk = data[self._position : end]
        self._position = max(self._position, end)
        return chunk

    def read_at(self, offset: int, size: int) -> bytes:
        """Read ``size`` bytes starting at ``offset`` without moving the position."""
        if offset < 0:
            raise ValueError("negative offset")
        data = self._materialized_data()
        return data[offset : offset + size]

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        data = self._materialized_data()
        if whence == io.SEEK_SET:
            position = offset
        elif whence == io.SEEK_CUR:
            position = self._position + offset
        elif whence == io.SEEK_END:
            position = len(data) + offset
        else:
            raise ValueError(f"invalid whence ({whence})")
        if position < 0:
            raise ValueError(f"negative seek position {position}")
        self._position = position
        return position

    def tell(self) -> int:
        self.initialize()
        return self._position
