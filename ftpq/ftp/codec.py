"""Control channel wire codec for ftpq.

Frames commands as single CRLF-terminated lines and reads numeric
status replies, both single-line and RFC 959 multi-line blocks.
"""

import logging
import socket
from enum import IntEnum
from typing import Optional, Tuple

from ftpq.ftp.exceptions import (
    FTPConnectionError,
    FTPNotConnectedError,
    FTPProtocolFormatError,
    FTPProtocolStatusError,
    FTPTimeoutError,
)

logger = logging.getLogger("ftpq.codec")

# Pass as expected status to accept any reply code
ANY_STATUS = -1

CRLF = "\r\n"

# Longest reply line accepted from the server
MAX_LINE = 8192


class StatusCode(IntEnum):
    """FTP reply codes used by the client (RFC 959, 2228, 2389, 2428)."""
    ALREADY_OPEN = 125
    ABOUT_TO_SEND = 150
    COMMAND_OK = 200
    SYSTEM = 211
    READY = 220
    CLOSING = 221
    CLOSING_DATA_CONNECTION = 226
    PASSIVE_MODE = 227
    EXTENDED_PASSIVE_MODE = 229
    LOGGED_IN = 230
    AUTH_TLS = 234
    REQUESTED_FILE_ACTION_OK = 250
    PATH_CREATED = 257
    USER_OK = 331
    REQUEST_FILE_PENDING = 350
    SERVICE_NOT_AVAILABLE = 421
    CANNOT_OPEN_DATA_CONNECTION = 425
    TRANSFER_ABORTED = 426
    NOT_IMPLEMENTED = 502
    NOT_LOGGED_IN = 530
    FILE_UNAVAILABLE = 550


def _sanitize(line: str) -> str:
    """Hide the argument of PASS commands in log output."""
    if line[:5].upper() == "PASS ":
        return "PASS ****"
    return line


def parse_status_line(line: str) -> Tuple[int, str, bool]:
    """
    Split a reply line into its parts.

    Args:
        line: Reply line without the trailing CRLF

    Returns:
        Tuple of (code, text, continues) where continues is True for the
        first line of a multi-line reply ("NNN-text")

    Raises:
        FTPProtocolFormatError: If the line does not start with a status code
    """
    if len(line) < 3 or not line[:3].isdigit():
        raise FTPProtocolFormatError("status", line)
    if len(line) > 3 and line[3] not in " -":
        raise FTPProtocolFormatError("status", line)

    continues = len(line) > 3 and line[3] == "-"
    return int(line[:3]), line[4:], continues


class ControlChannel:
    """Line-oriented reader/writer over the control socket."""

    def __init__(self, sock: socket.socket, host: str, port: int, encoding: str = "utf-8"):
        """
        Initialize the channel.

        Args:
            sock: Connected control socket (plain or TLS)
            host: Remote host, used for error reporting
            port: Remote control port, used for error reporting
            encoding: Text encoding of commands and replies. Bytes that do
                not decode are kept as surrogates and written back unchanged.
        """
        self.host = host
        self.port = port
        self.encoding = encoding
        self._sock: Optional[socket.socket] = None
        self._file = None
        self.rebind(sock)

    @property
    def sock(self) -> socket.socket:
        """The socket currently carrying the control channel."""
        if self._sock is None:
            raise FTPNotConnectedError("Control channel access")
        return self._sock

    @property
    def is_open(self) -> bool:
        """True until close() has been called."""
        return self._sock is not None

    def rebind(self, sock: socket.socket) -> None:
        """Switch reading and writing to a new socket (after AUTH TLS)."""
        self._sock = sock
        self._file = sock.makefile("r", encoding=self.encoding, errors="surrogateescape")

    def send_command(self, line: str) -> None:
        """
        Write one command line and flush it.

        Raises:
            ValueError: If the command contains line breaks
            FTPConnectionError: If the socket write fails
        """
        if "\r" in line or "\n" in line:
            raise ValueError("an illegal newline character should not be contained")

        logger.debug(f"-> {_sanitize(line)}")
        try:
            self.sock.sendall((line + CRLF).encode(self.encoding, errors="surrogateescape"))
        except socket.timeout:
            raise FTPTimeoutError(self.host, self.port, self.sock.gettimeout(), "send a command to")
        except OSError as e:
            raise FTPConnectionError(self.host, self.port, e)

    def _read_line(self) -> str:
        if self._file is None:
            raise FTPNotConnectedError("Control channel read")
        try:
            line = self._file.readline(MAX_LINE + 1)
        except socket.timeout:
            raise FTPTimeoutError(self.host, self.port, self.sock.gettimeout(), "read a reply from")
        except OSError as e:
            raise FTPConnectionError(self.host, self.port, e)

        if len(line) > MAX_LINE:
            raise FTPProtocolFormatError("reply", line[:64])
        if not line:
            raise FTPConnectionError(
                self.host, self.port, EOFError("control connection closed by server")
            )
        return line.rstrip("\r\n")

    def read_response(self, expected: int = ANY_STATUS) -> Tuple[int, str]:
        """
        Read one (possibly multi-line) reply.

        Args:
            expected: Required status code, or ANY_STATUS to accept any

        Returns:
            Tuple of (code, message). Lines of a multi-line message are
            joined with newlines.

        Raises:
            FTPProtocolStatusError: If the code differs from expected
            FTPProtocolFormatError: If the reply is not a status reply
        """
        code, text, continues = parse_status_line(self._read_line())
        lines = [text]

        if continues:
            terminator = f"{code:03d} "
            while True:
                line = self._read_line()
                if line.startswith(terminator) or line == terminator.rstrip():
                    lines.append(line[4:])
                    break
                if line.startswith(f"{code:03d}-"):
                    line = line[4:]
                lines.append(line)

        message = "\n".join(lines)
        logger.debug(f"<- {code} {message}")

        if expected >= 0 and code != expected:
            raise FTPProtocolStatusError(code, message)
        return code, message

    def close(self) -> None:
        """Close the reader and the underlying socket."""
        if self._file is not None:
            self._file.close()
            self._file = None
        if self._sock is not None:
            self._sock.close()
            self._sock = None
