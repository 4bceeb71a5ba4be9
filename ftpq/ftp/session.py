"""FTP control session for ftpq.

Provides SessionState enum, SessionConfig dataclass and the
ControlSession class owning one control connection.
"""

import logging
import socket
import ssl
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Dict, List, Optional, Sequence, Tuple

from ftpq.ftp.codec import ANY_STATUS, ControlChannel, StatusCode
from ftpq.ftp.data import DataResponse, cmd_data_conn_from, open_data_connection
from ftpq.ftp.exceptions import (
    FTPAuthenticationError,
    FTPConnectionError,
    FTPDataConnectionError,
    FTPError,
    FTPNotConnectedError,
    FTPProtocolFormatError,
    FTPSecurityError,
    FTPTimeoutError,
)
from ftpq.ftp.listing import DirectoryEntry, parse_list_lines
from ftpq.ftp.transfer import TransferOutcome, TransferTask, multiple_transfer

logger = logging.getLogger("ftpq.session")

DEFAULT_PORT = 21


class SessionState(Enum):
    """Lifecycle state of a control session."""
    CONNECTED = "connected"
    SECURED = "secured"
    LOGGED_IN = "logged_in"
    CLOSED = "closed"


@dataclass
class SessionConfig:
    """Where and how to reach the server."""
    host: str
    port: int = DEFAULT_PORT
    timeout: Optional[float] = 30
    cert_file: Optional[str] = None

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.host:
            raise ValueError("Host is required")
        if not 1 <= self.port <= 65535:
            raise ValueError(f"Port must be between 1 and 65535, got {self.port}")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"Timeout must be positive, got {self.timeout}")

    @property
    def address(self) -> str:
        """host:port, with brackets around IPv6 literals."""
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def split_address(address: str) -> Tuple[str, int]:
    """
    Split "host:port", "[v6]:port" or a bare host.

    Raises:
        ValueError: If the port is not a number
    """
    if address.startswith("["):
        host, _, rest = address[1:].partition("]")
        port = rest[1:] if rest.startswith(":") else ""
    elif address.count(":") == 1:
        host, port = address.split(":")
    else:
        host, port = address, ""

    if not port:
        return host, DEFAULT_PORT
    if not port.isdigit():
        raise ValueError(f"Invalid port in address '{address}'")
    return host, int(port)


def create_tls_context(cert_file: str) -> ssl.SSLContext:
    """
    Build a client TLS context trusting the given PEM certificate.

    The certificate pins the server, so host names are not checked:
    servers are commonly addressed by IP.

    Raises:
        FTPSecurityError: If the certificate cannot be loaded
    """
    try:
        context = ssl.create_default_context(cafile=cert_file)
    except (OSError, ssl.SSLError) as e:
        raise FTPSecurityError(f"Cannot load server certificate '{cert_file}'", e)
    context.check_hostname = False
    return context


class ControlSession:
    """
    One control connection to an FTP server.

    A session is not thread-safe: run parallel work on clones.
    """

    # Block size for STOR copies (8KB)
    BLOCK_SIZE = 8192

    def __init__(
        self,
        channel: ControlChannel,
        config: SessionConfig,
        tls_context: Optional[ssl.SSLContext] = None
    ):
        """
        Wrap an already connected control channel. Use dial() instead.

        Args:
            channel: Control channel positioned before the greeting
            config: Configuration used to reach the server
            tls_context: TLS context for AUTH TLS and protected data
        """
        self._channel = channel
        self._config = config
        self._tls_context = tls_context
        self._control_secured = False
        self._data_secured = False
        self._username: Optional[str] = None
        self._password: Optional[str] = None
        self._features: Dict[str, str] = {}
        self._state = SessionState.CONNECTED

    @classmethod
    def dial(cls, config: SessionConfig) -> "ControlSession":
        """
        Connect, read the greeting and probe features.

        Raises:
            FTPConnectionError: If the server cannot be reached or greets badly
            FTPTimeoutError: If the connection attempt times out
            FTPSecurityError: If the certificate file cannot be loaded
        """
        tls_context = create_tls_context(config.cert_file) if config.cert_file else None

        logger.info(f"Connecting to {config.address}")
        try:
            sock = socket.create_connection((config.host, config.port), timeout=config.timeout)
        except socket.timeout:
            raise FTPTimeoutError(config.host, config.port, config.timeout)
        except OSError as e:
            raise FTPConnectionError(config.host, config.port, e)
        # The timeout bounds establishment only
        sock.settimeout(None)

        session = cls(ControlChannel(sock, config.host, config.port), config, tls_context)
        try:
            session._channel.read_response(StatusCode.READY)
            session.probe_features()
        except FTPConnectionError:
            session.close()
            raise
        except FTPError as e:
            session.close()
            raise FTPConnectionError(config.host, config.port, e)

        logger.info(f"Connected to {config.address}")
        return session

    @property
    def config(self) -> SessionConfig:
        """Configuration used to reach the server."""
        return self._config

    @property
    def host(self) -> str:
        return self._config.host

    @property
    def port(self) -> int:
        return self._config.port

    @property
    def timeout(self) -> Optional[float]:
        """Timeout for establishing the control and data connections."""
        return self._config.timeout

    @property
    def channel(self) -> ControlChannel:
        """
        The control channel.

        Raises:
            FTPNotConnectedError: If the session is closed
        """
        if not self._channel.is_open:
            raise FTPNotConnectedError("Control channel access")
        return self._channel

    @property
    def tls_context(self) -> Optional[ssl.SSLContext]:
        return self._tls_context

    @property
    def control_secured(self) -> bool:
        """True after a successful AUTH TLS."""
        return self._control_secured

    @property
    def data_secured(self) -> bool:
        """True after PROT P: data connections use TLS."""
        return self._data_secured

    @property
    def username(self) -> Optional[str]:
        """User of the last successful login."""
        return self._username

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_open(self) -> bool:
        """True until quit() or close()."""
        return self._channel.is_open

    @property
    def features(self) -> Dict[str, str]:
        """Features advertised by FEAT (name -> description)."""
        return dict(self._features)

    def exec(self, expected: int, command: str) -> Tuple[int, str]:
        """
        Send one command and read its reply.

        Args:
            expected: Required reply code, or ANY_STATUS
            command: Command line without CRLF

        Returns:
            Tuple of (code, message)

        Raises:
            FTPProtocolStatusError: If the reply code differs from expected
        """
        channel = self.channel
        channel.send_command(command)
        return channel.read_response(expected)

    def authenticate_tls(self) -> None:
        """
        Upgrade the control connection with AUTH TLS and protect data.

        On failure the session state is undefined and it should be closed.

        Raises:
            FTPSecurityError: If no certificate is configured or the handshake fails
            FTPProtocolStatusError: If the server rejects AUTH, PBSZ or PROT
        """
        if self._tls_context is None:
            raise FTPSecurityError("TLS configuration is missing")

        self.exec(StatusCode.AUTH_TLS, "AUTH TLS")
        try:
            sock = self._tls_context.wrap_socket(self.channel.sock, server_hostname=self.host)
        except (ssl.SSLError, OSError) as e:
            raise FTPSecurityError("TLS handshake on control connection failed", e)
        self._channel.rebind(sock)
        self._control_secured = True
        if self._state == SessionState.CONNECTED:
            self._state = SessionState.SECURED

        self.exec(StatusCode.COMMAND_OK, "PBSZ 0")
        self.exec(StatusCode.COMMAND_OK, "PROT P")
        self._data_secured = True
        logger.info(f"Control and data connections to {self._config.address} secured")

    def login(self, user: str, password: str) -> None:
        """
        Authenticate, switch to binary mode and refresh features.

        "anonymous"/"anonymous" is the usual scheme for read-only accounts.

        Raises:
            FTPAuthenticationError: If the server rejects the credentials
        """
        code, message = self.exec(ANY_STATUS, f"USER {user}")

        if code == StatusCode.USER_OK:
            code, message = self.exec(ANY_STATUS, f"PASS {password}")
        if code != StatusCode.LOGGED_IN:
            raise FTPAuthenticationError(user, message)

        self._username = user
        self._password = password

        self.exec(StatusCode.COMMAND_OK, "TYPE I")
        self.probe_features()
        self._state = SessionState.LOGGED_IN
        logger.info(f"Logged in as '{user}'")

    def probe_features(self) -> Dict[str, str]:
        """
        Refresh the feature map with FEAT (RFC 2389).

        A server without FEAT simply has no extra features.
        """
        code, message = self.exec(ANY_STATUS, "FEAT")
        features: Dict[str, str] = {}

        if code == StatusCode.SYSTEM:
            for line in message.split("\n"):
                if not line.startswith(" "):
                    continue
                name, _, description = line.strip().partition(" ")
                if name:
                    features[name] = description

        self._features = features
        return self.features

    def clone(self) -> "ControlSession":
        """
        Open an independent session to the same server as the same user.

        Raises:
            FTPAuthenticationError: If this session never logged in
            FTPError: If dialing, TLS or login fails on the new session
        """
        if self._username is None:
            raise FTPAuthenticationError("", "no stored credentials to clone the session with")

        sub = ControlSession.dial(self._config)
        try:
            if self._control_secured:
                sub.authenticate_tls()
            sub.login(self._username, self._password)
        except FTPError:
            sub.close()
            raise
        return sub

    def change_dir(self, path: str) -> None:
        """Issue CWD."""
        self.exec(StatusCode.REQUESTED_FILE_ACTION_OK, f"CWD {path}")

    def change_dir_to_parent(self) -> None:
        """Issue CDUP."""
        self.exec(StatusCode.REQUESTED_FILE_ACTION_OK, "CDUP")

    def current_dir(self) -> str:
        """
        Return the remote working directory (PWD).

        Raises:
            FTPProtocolFormatError: If the reply holds no quoted path
        """
        _, message = self.exec(StatusCode.PATH_CREATED, "PWD")

        start = message.find('"')
        end = message.rfind('"')
        if start == -1 or end <= start:
            raise FTPProtocolFormatError("PWD", message)
        return message[start + 1:end].replace('""', '"')

    def rename(self, from_path: str, to_path: str) -> None:
        """Rename a remote file (RNFR/RNTO)."""
        self.exec(StatusCode.REQUEST_FILE_PENDING, f"RNFR {from_path}")
        self.exec(StatusCode.REQUESTED_FILE_ACTION_OK, f"RNTO {to_path}")

    def delete(self, path: str) -> None:
        """Delete a remote file (DELE)."""
        self.exec(StatusCode.REQUESTED_FILE_ACTION_OK, f"DELE {path}")

    def make_dir(self, path: str) -> None:
        """Create a remote directory (MKD)."""
        self.exec(StatusCode.PATH_CREATED, f"MKD {path}")

    def remove_dir(self, path: str) -> None:
        """Remove a remote directory (RMD)."""
        self.exec(StatusCode.REQUESTED_FILE_ACTION_OK, f"RMD {path}")

    def noop(self) -> None:
        """Keep the connection alive (NOOP)."""
        self.exec(StatusCode.COMMAND_OK, "NOOP")

    def logout(self) -> None:
        """Log the current user out (REIN)."""
        self.exec(StatusCode.READY, "REIN")
        self._username = None
        self._password = None
        self._state = SessionState.SECURED if self._control_secured else SessionState.CONNECTED

    def open_data_connection(self):
        """Negotiate a passive data connection. See ftpq.ftp.data."""
        return open_data_connection(self)

    def retrieve(self, path: str, offset: int = 0) -> DataResponse:
        """
        Start downloading a file (RETR).

        The returned stream must be closed to finish the transfer.

        Args:
            path: Remote file path
            offset: Number of leading bytes the server should skip
        """
        conn = cmd_data_conn_from(self, offset, f"RETR {path}")
        return DataResponse(conn, self._channel)

    def store(self, path: str, source: BinaryIO, offset: int = 0) -> int:
        """
        Upload the content of a binary stream (STOR).

        The completion reply is always read so the session stays usable;
        a copy failure is reported unless reading that reply fails too.

        Args:
            path: Remote file path
            source: Binary file-like object to read from
            offset: Remote offset to start writing at

        Returns:
            Number of bytes sent
        """
        conn = cmd_data_conn_from(self, offset, f"STOR {path}")

        copy_error = None
        sent = 0
        try:
            sent = conn.send_from(source, self.BLOCK_SIZE)
        except OSError as e:
            copy_error = FTPDataConnectionError(conn.host, conn.port, e)
        finally:
            conn.close()

        self._channel.read_response(StatusCode.CLOSING_DATA_CONNECTION)
        if copy_error is not None:
            raise copy_error
        return sent

    def name_list(self, path: str = "") -> List[str]:
        """Return the names in a remote directory (NLST)."""
        command = f"NLST {path}" if path else "NLST"
        with DataResponse(cmd_data_conn_from(self, 0, command), self._channel) as response:
            return [line for line in response.iter_lines(self._channel.encoding) if line]

    def list(self, path: str = "") -> List[DirectoryEntry]:
        """Return the decoded entries of a remote directory (LIST)."""
        command = f"LIST {path}" if path else "LIST"
        with DataResponse(cmd_data_conn_from(self, 0, command), self._channel) as response:
            return parse_list_lines(list(response.iter_lines(self._channel.encoding)))

    def multiple_transfer(self, tasks: Sequence[TransferTask], nr_parallel: int = -1) -> List[TransferOutcome]:
        """Run transfer tasks over parallel sessions. See ftpq.ftp.transfer."""
        return multiple_transfer(self, tasks, nr_parallel)

    def quit(self) -> None:
        """
        Send QUIT and close the connection, even if QUIT fails.

        Calling it on an already closed session does nothing.
        """
        if not self._channel.is_open:
            logger.debug("Quit on closed session ignored")
            return
        try:
            self.exec(StatusCode.CLOSING, "QUIT")
        finally:
            self.close()
        logger.info(f"Disconnected from {self._config.address}")

    def close(self) -> None:
        """Close the control connection without QUIT."""
        self._channel.close()
        self._state = SessionState.CLOSED

    def __enter__(self) -> "ControlSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is None:
            self.quit()
        else:
            self.close()


def dial(
    address: str,
    timeout: Optional[float] = 30,
    cert_file: Optional[str] = None
) -> ControlSession:
    """
    Connect to "host:port" (port defaults to 21).

    Args:
        address: Server address
        timeout: Seconds allowed to establish each connection, None to wait forever
        cert_file: PEM certificate of the server, required for AUTH TLS
    """
    host, port = split_address(address)
    return ControlSession.dial(SessionConfig(host=host, port=port, timeout=timeout, cert_file=cert_file))
