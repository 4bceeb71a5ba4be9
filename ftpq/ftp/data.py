"""Data connection negotiation for ftpq.

Opens the secondary transport for one transfer using passive mode
(PASV or EPSV), applying TLS when the session protects data.
"""

import logging
import re
import socket
import ssl
from typing import BinaryIO, Iterator, Optional

from ftpq.ftp.codec import ANY_STATUS, ControlChannel, StatusCode
from ftpq.ftp.exceptions import (
    FTPDataConnectionError,
    FTPError,
    FTPProtocolFormatError,
    FTPProtocolStatusError,
)

logger = logging.getLogger("ftpq.data")

# h1,h2,h3,h4,p1,p2 inside a 227 reply
PASV_PATTERN = re.compile(r"(\d+),(\d+),(\d+),(\d+),(\d+),(\d+)", re.ASCII)


def parse_pasv_port(reply: str) -> int:
    """
    Extract the data port from a 227 reply.

    "227 Entering Passive Mode (127,0,0,1,200,13)" gives 200*256+13.

    Raises:
        FTPProtocolFormatError: If the reply holds no address tuple
    """
    match = PASV_PATTERN.search(reply)
    if match is None:
        raise FTPProtocolFormatError("PASV", reply)

    high, low = int(match.group(5)), int(match.group(6))
    if high > 255 or low > 255:
        raise FTPProtocolFormatError("PASV", reply)
    return high * 256 + low


def parse_epsv_port(reply: str) -> int:
    """
    Extract the data port from a 229 reply.

    "229 Entering Extended Passive Mode (|||6446|)" gives 6446.

    Raises:
        FTPProtocolFormatError: If the port field is missing or invalid
    """
    start = reply.find("|||")
    end = reply.rfind("|")
    if start == -1 or end <= start + 2:
        raise FTPProtocolFormatError("EPSV", reply)

    try:
        port = int(reply[start + 3:end])
    except ValueError:
        raise FTPProtocolFormatError("EPSV", reply)
    if not 1 <= port <= 65535:
        raise FTPProtocolFormatError("EPSV", reply)
    return port


class DataConnection:
    """Secondary socket carrying the bytes of one transfer."""

    def __init__(self, sock: socket.socket, host: str, port: int):
        self.host = host
        self.port = port
        self._sock = sock
        self._reader: Optional[BinaryIO] = None
        self._closed = False

    @property
    def sock(self) -> socket.socket:
        """Underlying socket."""
        return self._sock

    @property
    def is_secured(self) -> bool:
        """True once wrapped in TLS."""
        return isinstance(self._sock, ssl.SSLSocket)

    @property
    def closed(self) -> bool:
        """True after close()."""
        return self._closed

    def secure(self, context: ssl.SSLContext, session: Optional[ssl.SSLSession] = None) -> None:
        """
        Wrap the socket in TLS. The handshake is deferred to handshake().

        Args:
            context: TLS context of the owning control session
            session: TLS session of the control channel, for resumption
        """
        try:
            self._sock = context.wrap_socket(
                self._sock,
                server_hostname=self.host,
                do_handshake_on_connect=False,
                session=session,
            )
        except (ssl.SSLError, OSError, ValueError) as e:
            raise FTPDataConnectionError(self.host, self.port, e)

    def handshake(self) -> None:
        """Run the TLS handshake if the connection is secured."""
        if not self.is_secured:
            return
        try:
            self._sock.do_handshake()
        except (ssl.SSLError, OSError) as e:
            raise FTPDataConnectionError(self.host, self.port, e)

    def _get_reader(self) -> BinaryIO:
        if self._reader is None:
            self._reader = self._sock.makefile("rb")
        return self._reader

    def read(self, size: int = -1) -> bytes:
        """Read up to size bytes, or everything when size is negative."""
        return self._get_reader().read(size)

    def iter_lines(self, encoding: str = "utf-8") -> Iterator[str]:
        """Yield decoded lines without their line terminator."""
        for raw in self._get_reader():
            yield raw.decode(encoding, errors="surrogateescape").rstrip("\r\n")

    def send_from(self, source: BinaryIO, block_size: int = 8192) -> int:
        """
        Copy everything readable from source to the connection.

        Returns:
            Number of bytes sent
        """
        sent = 0
        while True:
            block = source.read(block_size)
            if not block:
                break
            self._sock.sendall(block)
            sent += len(block)
        return sent

    def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        if self._reader is not None:
            self._reader.close()
            self._reader = None

        if self.is_secured:
            try:
                self._sock.unwrap()
            except (ssl.SSLError, OSError) as e:
                # close_notify is advisory, the control reply judges the transfer
                logger.debug(f"TLS shutdown on data connection failed: {e}")
        self._sock.close()


class DataResponse:
    """
    Readable stream over a RETR/LIST/NLST data connection.

    Closing it closes the data connection and then reads the transfer
    completion reply, keeping the control channel in sync.
    """

    def __init__(self, connection: DataConnection, channel: ControlChannel):
        self._connection = connection
        self._channel = channel
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, size: int = -1) -> bytes:
        return self._connection.read(size)

    def iter_lines(self, encoding: str = "utf-8") -> Iterator[str]:
        return self._connection.iter_lines(encoding)

    def close(self) -> None:
        """
        Close the data connection and read the 226 confirmation.

        Raises:
            FTPError: The confirmation failure if there is one, otherwise
                the failure to close the data connection
        """
        if self._closed:
            return
        self._closed = True

        close_error = None
        try:
            self._connection.close()
        except OSError as e:
            close_error = FTPDataConnectionError(self._connection.host, self._connection.port, e)

        try:
            self._channel.read_response(StatusCode.CLOSING_DATA_CONNECTION)
        except FTPError as e:
            raise e from close_error

        if close_error is not None:
            raise close_error

    def __enter__(self) -> "DataResponse":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def _passive_port(session) -> int:
    """Ask the server for a passive data port, preferring EPSV when advertised."""
    features = session.features
    port = 0

    if "nat6" not in features and "EPSV" not in features:
        try:
            _, reply = session.exec(StatusCode.PASSIVE_MODE, "PASV")
            port = parse_pasv_port(reply)
        except (FTPProtocolStatusError, FTPProtocolFormatError) as e:
            logger.debug(f"PASV unusable, trying EPSV: {e}")

    if port == 0:
        _, reply = session.exec(StatusCode.EXTENDED_PASSIVE_MODE, "EPSV")
        port = parse_epsv_port(reply)
    return port


def open_data_connection(session) -> DataConnection:
    """
    Negotiate and open a data connection for the session.

    Raises:
        FTPDataConnectionError: If negotiation, dialing or TLS setup fails
    """
    try:
        port = _passive_port(session)
    except (FTPProtocolStatusError, FTPProtocolFormatError) as e:
        raise FTPDataConnectionError(session.host, None, e)

    logger.debug(f"Opening data connection to {session.host}:{port}")
    try:
        sock = socket.create_connection((session.host, port), timeout=session.timeout)
    except OSError as e:
        raise FTPDataConnectionError(session.host, port, e)
    sock.settimeout(None)

    conn = DataConnection(sock, session.host, port)
    if session.data_secured:
        try:
            conn.secure(session.tls_context, getattr(session.channel.sock, "session", None))
        except FTPDataConnectionError:
            conn.close()
            raise
    return conn


def _resync_after_abort(session) -> None:
    """Consume the reply the server sends for a transfer we dropped."""
    try:
        session.channel.read_response(ANY_STATUS)
    except FTPError as e:
        logger.warning(f"Control channel may be out of sync: {e}")


def cmd_data_conn_from(session, offset: int, command: str) -> DataConnection:
    """
    Open a data connection and start a transfer command on it.

    Args:
        session: Logged-in ControlSession
        offset: Restart offset, 0 for a full transfer
        command: Transfer command line (RETR, STOR, LIST, NLST)

    Returns:
        Connected DataConnection, owned by the caller

    Raises:
        FTPDataConnectionError: If the data connection cannot be set up
        FTPProtocolStatusError: If the server refuses the command
    """
    conn = open_data_connection(session)

    try:
        if offset != 0:
            session.exec(StatusCode.REQUEST_FILE_PENDING, f"REST {offset}")

        session.channel.send_command(command)
        code, message = session.channel.read_response(ANY_STATUS)
    except FTPError:
        conn.close()
        raise

    if code not in (StatusCode.ALREADY_OPEN, StatusCode.ABOUT_TO_SEND):
        conn.close()
        raise FTPProtocolStatusError(code, message)

    try:
        conn.handshake()
    except FTPDataConnectionError:
        conn.close()
        _resync_after_abort(session)
        raise
    return conn
