"""
Null-Terminated Protocol Chat Client

A command-line client for the null-terminated chat protocol.

Flow:
- Ask for a username (at most MAX_NAME_LEN bytes)
- Connect, print the server's welcome message and send the username
- Wait on stdin and the connection at the same time, sending each typed
  line and printing each relayed message until either side says "bye",
  stdin closes or the server goes away
"""

import logging
import selectors
import socket
import sys
from enum import Enum, auto

from linechat.common.line_reader import ReadStatus, read_line
from linechat.null_protocol import protocol
from linechat.null_protocol.protocol import RecvStatus

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


class ChatClientError(Exception):
    """Fatal error that ends the client before or during the handshake"""


class InputClosedError(ChatClientError):
    """Standard input closed before a username was entered"""


class ConnectError(ChatClientError):
    """The connection to the server could not be established"""


class ServerBusyError(ChatClientError):
    """The server closed the connection instead of sending a welcome"""


class HandshakeError(ChatClientError):
    """Receiving the welcome or sending the username failed"""


class SessionState(Enum):
    """States of the session loop"""
    WAITING = auto()
    DISPATCHING = auto()
    CLOSED = auto()


def describe_error(e: OSError) -> str:
    return e.strerror or str(e)


class NullChatClient:
    """
    Interactive chat client using the null-terminated protocol.

    Holds all state of one chat session.

    Attributes:
        host (str): Server IPv4 address
        port (int): Server port number
        username (str): Name sent during the handshake, set once
        sock (socket): TCP connection to the server, None when closed
        inbuf (bytearray): Receive buffer reused for every inbound frame
        stdin: Unbuffered binary stream the user types into
        interactive (bool): Whether prompts should be printed

    The client is a context manager; leaving the block releases the
    connection whatever path got there.
    """

    def __init__(self, host: str = '127.0.0.1', port: int = 9999,
                 stdin=None, stdout=None, stderr=None,
                 interactive: bool = False):
        """
        Initialize the chat client.

        Args:
            host: Server IPv4 address
            port: Server port number
            stdin: Binary stream to read user input from. Defaults to an
                   unbuffered reader over the process's stdin descriptor so
                   that readiness on the descriptor matches unread input.
            stdout: Text stream for chat output
            stderr: Text stream for warnings and errors
            interactive: Print the username and message prompts
        """
        self.host = host
        self.port = port
        self.username = None
        self._username_data = b''
        self.sock = None
        self.inbuf = protocol.new_frame_buffer()
        if stdin is None:
            stdin = open(sys.stdin.fileno(), 'rb', buffering=0, closefd=False)
        self.stdin = stdin
        self.stdout = stdout if stdout is not None else sys.stdout
        self.stderr = stderr if stderr is not None else sys.stderr
        self.interactive = interactive

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.disconnect()
        return False

    def _print(self, *args, **kwargs):
        print(*args, file=self.stdout, flush=True, **kwargs)

    def _warn(self, *args):
        print(*args, file=self.stderr, flush=True)

    def _prompt(self, text: str):
        if self.interactive:
            self._print(text, end='')

    def read_input(self, max_len: int):
        """Read one line from stdin, warning the user if reading failed"""
        result = read_line(self.stdin, max_len)
        if result.error is not None:
            self._warn(f"Warning: Failed to read from stdin. {describe_error(result.error)}.")
        return result

    def prompt_username(self) -> str:
        """
        Ask for a username until one of valid length is entered.

        Returns:
            str: The username

        Raises:
            InputClosedError: If stdin closes first
        """
        if self.username is not None:
            raise RuntimeError("Username is already set")

        while True:
            self._prompt("Enter your username: ")
            result = self.read_input(protocol.MAX_NAME_LEN)
            if result.status == ReadStatus.END_OF_STREAM:
                raise InputClosedError("No username entered")
            if result.status == ReadStatus.OVERFLOW:
                self._warn(f"Sorry, limit your username to {protocol.MAX_NAME_LEN} characters.")
            elif result.status == ReadStatus.OK:
                break

        self._username_data = protocol.strip_terminator(result.data)
        self.username = protocol.decode_message(self._username_data)
        self._print(f"Hello, {self.username}. Let's try to connect to the server.")
        return self.username

    def connect(self):
        """
        Connect to the chat server.

        Raises:
            ConnectError: If the socket cannot be created or connected
        """
        try:
            self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            raise ConnectError(f"Failed to create socket. {describe_error(e)}.") from e

        try:
            self.sock.connect((self.host, self.port))
        except OSError as e:
            raise ConnectError(f"Failed to connect to server. {describe_error(e)}.") from e
        logger.debug(f"Connected to {self.host}:{self.port}")

    def disconnect(self):
        """Close the connection. Safe to call more than once."""
        if self.sock is None:
            return
        sock, self.sock = self.sock, None
        try:
            sock.close()
        except OSError as e:
            logger.warning(f"Error closing connection: {describe_error(e)}")
        logger.debug("Connection released")

    def handshake(self):
        """
        Receive the welcome message and send the username.

        Raises:
            ServerBusyError: If the server closes without a welcome
            HandshakeError: If the receive or send fails
        """
        result = protocol.read_frame(self.sock, self.inbuf)
        if result.status == RecvStatus.PEER_CLOSED:
            raise ServerBusyError("All connections are busy. Try again later.")
        if result.status == RecvStatus.RECEIVE_ERROR:
            raise HandshakeError(
                f"Failed to receive message from server. {describe_error(result.error)}."
            )
        self._print(f"\n{result.text}\n")

        try:
            self.sock.sendall(protocol.encode_message(self._username_data, protocol.MAX_NAME_LEN))
        except OSError as e:
            raise HandshakeError(f"Failed to send username to server. {describe_error(e)}.") from e
        logger.debug(f"Sent username '{self.username}'")

    def send_text(self, content) -> bool:
        """
        Send one chat message.

        Returns:
            bool: True if the message was handed to the connection
        """
        try:
            self.sock.sendall(protocol.encode_message(content))
            return True
        except OSError as e:
            self._warn(f"Warning: Failed to send message to server. {describe_error(e)}.")
            return False

    def handle_stdin(self) -> SessionState:
        """Read one typed line and send it"""
        result = self.read_input(protocol.MAX_MSG_LEN)
        if result.status == ReadStatus.OVERFLOW:
            self._print(
                "Sorry, limit your message to 1 line of at most "
                f"{protocol.MAX_MSG_LEN} characters."
            )
        elif result.status == ReadStatus.END_OF_STREAM:
            self._print()
            return SessionState.CLOSED
        elif result.status == ReadStatus.OK:
            data = protocol.strip_terminator(result.data)
            self.send_text(data)
            if protocol.is_sentinel(protocol.decode_message(data)):
                self._print("Goodbye.")
                return SessionState.CLOSED
        return SessionState.WAITING

    def handle_socket(self) -> SessionState:
        """Read one frame from the server and display it"""
        result = protocol.receive_message(self.sock, self.inbuf)
        if result.status == RecvStatus.PEER_CLOSED:
            self._warn("\nConnection to server has been lost.")
            return SessionState.CLOSED
        if result.status == RecvStatus.RECEIVE_ERROR:
            self._warn(
                "\nWarning: Failed to receive incoming message. "
                f"{describe_error(result.error)}."
            )
        elif result.status == RecvStatus.REMOTE_SHUTDOWN:
            self._print("\nServer initiated shutdown.")
            return SessionState.CLOSED
        else:
            self._print(f"\n{result.text}")
        return SessionState.WAITING

    def wait_for_activity(self, selector) -> set:
        """
        Block until stdin or the connection is readable.

        Returns:
            set: The ready file objects

        Raises:
            OSError: If the wait fails for a reason other than a signal
        """
        while True:
            try:
                events = selector.select()
            except InterruptedError:
                continue
            return {key.fileobj for key, _ in events}

    def main_loop(self) -> int:
        """
        Main client loop.

        Returns:
            int: Exit status, EXIT_FAILURE only if waiting itself failed
        """
        # select() rather than epoll: stdin may be redirected from a file
        selector = selectors.SelectSelector()
        selector.register(self.stdin, selectors.EVENT_READ)
        selector.register(self.sock, selectors.EVENT_READ)

        state = SessionState.WAITING
        try:
            while state != SessionState.CLOSED:
                self._prompt(f"[{self.username}]: ")
                try:
                    ready = self.wait_for_activity(selector)
                except OSError as e:
                    logger.debug(f"Readiness wait failed: {e!r}")
                    self._warn(f"Error: select() failed. {describe_error(e)}.")
                    return EXIT_FAILURE

                state = SessionState.DISPATCHING
                if self.stdin in ready:
                    state = self.handle_stdin()
                if state != SessionState.CLOSED and self.sock in ready:
                    state = self.handle_socket()
                if state == SessionState.DISPATCHING:
                    state = SessionState.WAITING
        finally:
            selector.close()
        return EXIT_SUCCESS

    def run(self) -> int:
        """
        Run a whole session: username, connect, handshake and main loop.

        Returns:
            int: Process exit status
        """
        try:
            with self:
                self.prompt_username()
                self.connect()
                self.handshake()
                return self.main_loop()
        except InputClosedError:
            self._print()
            return EXIT_FAILURE
        except ServerBusyError as e:
            self._print(e)
            return EXIT_FAILURE
        except ChatClientError as e:
            logger.debug(f"Session aborted: {e}")
            self._warn(f"Error: {e}")
            return EXIT_FAILURE
