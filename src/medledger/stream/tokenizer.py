"""Line-at-a-time reader for large delimited source files."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

LINE_TERMINATOR = b"\n"
DEFAULT_CHUNK_SIZE = 64 * 1024


class StreamTokenizer:
    """Read one logical line per call from a remembered byte offset.

    The file is opened for each call and closed before returning, so nothing
    beyond the current line is held between calls. The cursor starts past a
    fixed-size header and only moves forward.

    A tokenizer owns its cursor. Concurrent readers of the same file need
    their own instances (see ``partition_source`` for disjoint ranges).
    """

    def __init__(
        self,
        path: Path,
        start_offset: int = 0,
        end_offset: Optional[int] = None,
        encoding: str = "utf-8",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
        if start_offset < 0:
            raise ValueError(f"start_offset must be >= 0, got {start_offset}")
        if end_offset is not None and end_offset < start_offset:
            raise ValueError(f"end_offset {end_offset} precedes start_offset {start_offset}")
        self.path = Path(path)
        self._start_offset = start_offset
        self.offset = start_offset
        self.end_offset = end_offset
        self.encoding = encoding
        self.chunk_size = chunk_size

    @property
    def start_offset(self) -> int:
        return self._start_offset

    def next_line(self) -> Optional[str]:
        """Return the next line without its terminator, or None at end of stream.

        Trailing bytes with no line feed are not returned: they are logged and
        the cursor stays put, so a file still being written can be resumed.
        """
        if self.end_offset is not None and self.offset >= self.end_offset:
            return None

        with open(self.path, "rb") as f:
            f.seek(self.offset)
            # Locate the terminator in bounded chunks; only a complete line is read whole.
            length = 0
            terminated = False
            while not terminated:
                chunk = f.read(self.chunk_size)
                if not chunk:
                    break
                pos = chunk.find(LINE_TERMINATOR)
                terminated = pos >= 0
                length += pos + 1 if terminated else len(chunk)

            if length == 0:
                return None
            if not terminated:
                logger.warning(
                    f"Unterminated line of {length} bytes at offset {self.offset} in {self.path.name}"
                )
                return None

            f.seek(self.offset)
            raw = f.read(length)

        self.offset += len(raw)
        line = raw.decode(self.encoding, errors="replace")
        if line.endswith("\r\n"):
            return line[:-2]
        return line[:-1]

    def __iter__(self) -> Iterator[str]:
        while True:
            line = self.next_line()
            if line is None:
                return
            yield line

    def reset(self) -> None:
        self.offset = self._start_offset


def header_length(path: Path) -> int:
    """Return the byte length of the first line, terminator included."""
    with open(path, "rb") as f:
        return len(f.readline())


def partition_source(path: Path, header_bytes: int, parts: int) -> list[tuple[int, int]]:
    """Split a source into ``parts`` line-aligned ``(start, end)`` byte ranges.

    Ranges are contiguous and together cover every line after the header.
    Small files may yield empty ranges (start == end).
    """
    if parts < 1:
        raise ValueError(f"parts must be >= 1, got {parts}")
    size = os.path.getsize(path)
    if header_bytes > size:
        raise ValueError(f"header_bytes {header_bytes} exceeds file size {size}")

    step = (size - header_bytes) // parts
    boundaries = [header_bytes]
    with open(path, "rb") as f:
        for i in range(1, parts):
            target = max(header_bytes + i * step, boundaries[-1])
            if target >= size:
                boundaries.append(size)
                continue
            f.seek(target)
            if target > header_bytes:
                f.seek(target - 1)
                # Align to the start of the next line unless already at one.
                if f.read(1) != LINE_TERMINATOR:
                    f.readline()
            boundaries.append(min(f.tell(), size))
    boundaries.append(size)
    return list(zip(boundaries[:-1], boundaries[1:]))
