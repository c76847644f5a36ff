"""
Line Reader

Reads one newline-terminated line from a binary stream into a bounded
result, independent of the wire protocol used for the chat connection.
"""

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

logger = logging.getLogger(__name__)

NEWLINE = b'\n'


class ReadStatus(Enum):
    """Outcome of a single read_line() call"""
    OK = auto()
    EMPTY = auto()
    END_OF_STREAM = auto()
    OVERFLOW = auto()


@dataclass
class LineResult:
    """
    Result of reading one line.

    Attributes:
        status: How the read ended
        data: Line content without the newline. Holds the first max_len
              bytes on OVERFLOW and is empty for EMPTY and END_OF_STREAM.
        error: The exception that ended input, if reading failed
    """
    status: ReadStatus
    data: bytes = b''
    error: Optional[OSError] = None

    @property
    def text(self) -> str:
        return self.data.decode('utf-8', errors='replace')


def read_line(stream, max_len: int) -> LineResult:
    """
    Read one line of at most max_len bytes from stream.

    Args:
        stream: Binary stream; read(1) returns one byte, or b'' once closed
        max_len: Maximum number of content bytes

    Returns:
        LineResult. On OVERFLOW the rest of the line, newline included, has
        already been consumed so the next call starts on a fresh line. Input
        that ends before a newline is END_OF_STREAM even if some bytes were
        read; those bytes are discarded. A failing read is END_OF_STREAM
        with the exception in error.
    """
    buf = bytearray()
    count = 0
    try:
        while True:
            ch = stream.read(1)
            if not ch:
                return LineResult(ReadStatus.END_OF_STREAM)
            if ch == NEWLINE:
                break
            if count < max_len:
                buf += ch
            count += 1
    except OSError as e:
        logger.debug(f"Read failed: {e!r}")
        return LineResult(ReadStatus.END_OF_STREAM, error=e)

    if count > max_len:
        logger.debug(f"Discarded line of {count} bytes (limit {max_len})")
        return LineResult(ReadStatus.OVERFLOW, bytes(buf))
    if count == 0:
        return LineResult(ReadStatus.EMPTY)
    return LineResult(ReadStatus.OK, bytes(buf))
