"""
Null-Terminated Protocol Implementation

Defines the wire format for the chat application: every message is text
followed by a single zero byte. The same format is used in both directions.

Limits:
- Client messages carry at most MAX_MSG_LEN content bytes
- Usernames carry at most MAX_NAME_LEN content bytes
- Messages relayed by the server take the form "[name]: text", so inbound
  frames are bounded by BUFLEN = MAX_MSG_LEN + MAX_NAME_LEN + 4

The literal text "bye" is the sentinel: whichever side sends it ends its
session right after the message is transmitted or received.
"""

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

logger = logging.getLogger(__name__)

MAX_MSG_LEN = 1024
MAX_NAME_LEN = 20
BUFLEN = MAX_MSG_LEN + MAX_NAME_LEN + 4  # '[' before name, ']: ' after it

SENTINEL = "bye"
TERMINATOR = b'\x00'
ENCODING = 'utf-8'

MIN_PORT = 1024
MAX_PORT = 65535


class RecvStatus(Enum):
    """Outcome of reading one frame from the connection"""
    OK = auto()
    PEER_CLOSED = auto()
    RECEIVE_ERROR = auto()
    REMOTE_SHUTDOWN = auto()


@dataclass
class FrameResult:
    """
    Result of reading one null-terminated frame.

    Attributes:
        status: How the read ended
        text: Decoded frame content, valid for OK and REMOTE_SHUTDOWN only
        error: The underlying exception for RECEIVE_ERROR
        truncated: True if the frame had more content than the buffer holds
    """
    status: RecvStatus
    text: str = ""
    error: Optional[OSError] = None
    truncated: bool = False


def encode_message(content, max_len: int = MAX_MSG_LEN) -> bytes:
    """
    Encode a message according to the null-terminated protocol.

    Args:
        content: Message content, str or bytes
        max_len: Maximum number of content bytes

    Returns:
        The encoded message, terminator included

    Raises:
        ValueError: If the content holds a zero byte or is too long
    """
    data = content.encode(ENCODING) if isinstance(content, str) else bytes(content)
    if TERMINATOR in data:
        raise ValueError("Message contains a null byte")
    if len(data) > max_len:
        raise ValueError(f"Message too long ({len(data)} > {max_len} bytes)")
    return data + TERMINATOR


def decode_message(data) -> str:
    """Decode frame bytes up to the first terminator"""
    return strip_terminator(bytes(data)).decode(ENCODING, errors='replace')


def strip_terminator(data: bytes) -> bytes:
    """Content up to the first zero byte, as a C string would see it"""
    return data.split(TERMINATOR, 1)[0]


def is_sentinel(text: str) -> bool:
    """True only for the exact sentinel text"""
    return text == SENTINEL


def new_frame_buffer(capacity: int = BUFLEN) -> bytearray:
    """Receive buffer for frames of up to capacity content bytes"""
    return bytearray(capacity + 1)


def read_frame(sock, buf: bytearray) -> FrameResult:
    """
    Read exactly one null-terminated frame from sock, one byte at a time.

    Args:
        sock: Connected socket
        buf: Receive buffer from new_frame_buffer(), reused across calls.
             It holds len(buf) - 1 content bytes plus the terminator.

    Returns:
        FrameResult with status OK, PEER_CLOSED or RECEIVE_ERROR.

    If the byte after a full buffer of content is not the terminator, the
    frame is returned truncated to the capacity, that byte is dropped and
    nothing more is read, so the remainder of an oversized message will be
    read as the next frame.
    """
    capacity = len(buf) - 1
    count = 0
    with memoryview(buf) as view:
        try:
            while count <= capacity:
                if sock.recv_into(view[count:count + 1], 1) == 0:
                    if count:
                        logger.debug(f"Peer closed after {count} bytes of a frame")
                    return FrameResult(RecvStatus.PEER_CLOSED)
                if buf[count] == 0:
                    break
                count += 1
        except OSError as e:
            logger.debug(f"recv failed after {count} bytes: {e}")
            return FrameResult(RecvStatus.RECEIVE_ERROR, error=e)

    truncated = count > capacity
    if truncated:
        count = capacity
        logger.warning(
            f"Frame exceeded {capacity} bytes without a terminator; "
            "the next frame may be misaligned"
        )
    text = buf[:count].decode(ENCODING, errors='replace')
    logger.debug(f"Received frame of {count} bytes")
    return FrameResult(RecvStatus.OK, text, truncated=truncated)


def receive_message(sock, buf: bytearray) -> FrameResult:
    """Read one frame and flag the sentinel as REMOTE_SHUTDOWN"""
    result = read_frame(sock, buf)
    if result.status == RecvStatus.OK and is_sentinel(result.text):
        result.status = RecvStatus.REMOTE_SHUTDOWN
    return result
