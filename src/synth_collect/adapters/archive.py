"""Streaming ZIP writer and tolerant ZIP reader for session bundles."""

import io
import posixpath
import zipfile
import zlib
from collections.abc import Iterator
from typing import BinaryIO

from synth_collect.domain.bundles import IMAGES_PREFIX
from synth_collect.errors import ArchiveEntryError, BundleDecodeError


class _ChunkSink:
    """Write-only buffer handed to ZipFile.

    It has no ``tell``/``seek``, so ZipFile treats it as a non-seekable
    stream and emits data descriptors instead of rewriting local headers.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    def write(self, data: bytes) -> int:
        self._buffer.extend(data)
        return len(data)

    def flush(self) -> None:
        return None

    def take(self) -> bytes:
        data = bytes(self._buffer)
        self._buffer.clear()
        return data


class ArchiveWriter:
    """Build a ZIP archive incrementally and hand out bytes as they are produced.

    Every ``write_*`` method is a generator of output chunks; callers forward
    them to the response as soon as they arrive.
    """

    def __init__(
        self,
        compression_level: int = 3,
        chunk_size: int = 32 * 1024,
    ) -> None:
        self.compression_level = compression_level
        self.chunk_size = max(1, chunk_size)
        self.entries: list[str] = []
        self.bytes_written = 0
        self._sink = _ChunkSink()
        self._zip = zipfile.ZipFile(
            self._sink,
            mode="w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=compression_level,
        )
        self._closed = False

    def write_text(self, name: str, text: str) -> Iterator[bytes]:
        """Add a UTF-8 text entry."""
        yield from self.write_bytes(name, text.encode("utf-8"))

    def write_bytes(self, name: str, data: bytes) -> Iterator[bytes]:
        """Add a binary entry from memory."""
        with self._zip.open(name, mode="w") as dest:
            view = memoryview(data)
            for offset in range(0, len(view), self.chunk_size):
                dest.write(view[offset : offset + self.chunk_size])
                yield from self._drain()
        self.entries.append(name)
        yield from self._drain()

    def close(self) -> Iterator[bytes]:
        """Write the central directory and emit the remaining bytes."""
        if self._closed:
            return
        self._zip.close()
        self._closed = True
        yield from self._drain()

    def _drain(self) -> Iterator[bytes]:
        data = self._sink.take()
        if data:
            self.bytes_written += len(data)
            yield data


def normalize_entry_path(path: str) -> str:
    """Strip leading slashes and normalize separators."""
    cleaned = path.replace("\\", "/").lstrip("/")
    while cleaned.startswith("./"):
        cleaned = cleaned[2:]
    return cleaned


def _is_safe_entry(name: str) -> bool:
    if not name or name.startswith("/") or name.endswith("/"):
        return False
    return ".." not in name.split("/")


class ArchiveReader:
    """Random-access view over an uploaded ZIP bundle."""

    def __init__(self, source: bytes | BinaryIO) -> None:
        stream: BinaryIO = io.BytesIO(source) if isinstance(source, bytes) else source
        try:
            self._zip = zipfile.ZipFile(stream)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as exc:
            raise BundleDecodeError(f"Not a valid bundle archive: {exc}") from exc
        self._names = [
            info.filename for info in self._zip.infolist() if not info.is_dir()
        ]
        self._name_set = set(self._names)

    def entries(self) -> list[str]:
        """Return entry paths in archive order."""
        return list(self._names)

    def has(self, path: str) -> bool:
        """Return true when the exact entry exists."""
        return path in self._name_set

    def read_bytes(self, path: str) -> bytes:
        """Read an entry as bytes."""
        if not _is_safe_entry(path) or path not in self._name_set:
            raise KeyError(path)
        try:
            return self._zip.read(path)
        except (zipfile.BadZipFile, zlib.error, OSError) as exc:
            raise ArchiveEntryError(f"Cannot read {path}: {exc}") from exc

    def read_text(self, path: str, encoding: str = "utf-8") -> str:
        """Read an entry as text."""
        return self.read_bytes(path).decode(encoding)

    def locate(self, path: str | None, filename: str | None = None) -> str | None:
        """Find the entry for a record, tolerating legacy path layouts.

        Tries the normalized path, then ``images/<basename>``, then the bare
        basename, then any entry whose basename matches.
        """
        candidates: list[str] = []
        if path:
            normalized = normalize_entry_path(path)
            candidates.append(normalized)
            base = posixpath.basename(normalized)
            if base:
                candidates.extend([IMAGES_PREFIX + base, base])
        if filename:
            candidates.extend([IMAGES_PREFIX + filename, filename])
        for candidate in candidates:
            if _is_safe_entry(candidate) and candidate in self._name_set:
                return candidate
        wanted = {posixpath.basename(candidate) for candidate in candidates}
        wanted.discard("")
        for name in self._names:
            if _is_safe_entry(name) and posixpath.basename(name) in wanted:
                return name
        return None

    def close(self) -> None:
        """Close the underlying archive."""
        self._zip.close()

    def __enter__(self) -> "ArchiveReader":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()
