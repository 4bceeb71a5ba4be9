"""FTP-specific exceptions for ftpq.

Custom exception hierarchy for FTP operations to provide
clear error handling and user-friendly messages.
"""

from typing import List, Optional


def _single_line(text: str) -> str:
    return " ".join(part.strip() for part in text.splitlines() if part.strip())


class FTPError(Exception):
    """Base exception for all FTP-related errors."""

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class FTPConnectionError(FTPError):
    """Failed to establish or keep the FTP control connection."""

    def __init__(self, host: str, port: int, original_error: Exception = None):
        self.host = host
        self.port = port
        message = f"Failed to connect to {host}:{port}"
        super().__init__(message, original_error)


class FTPTimeoutError(FTPConnectionError):
    """A socket operation on the control connection timed out."""

    def __init__(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        operation: str = "connect to"
    ):
        super().__init__(host, port)
        self.timeout = timeout
        self.operation = operation
        self.message = f"Timed out after {timeout} seconds trying to {operation} {host}:{port}"


class FTPNotConnectedError(FTPError):
    """Operation attempted without active FTP connection."""

    def __init__(self, operation: str = "Operation"):
        message = f"{operation} requires an active FTP connection"
        super().__init__(message)


class FTPProtocolStatusError(FTPError):
    """Server replied with a status code other than the expected one."""

    def __init__(self, code: int, server_message: str):
        self.code = code
        self.server_message = server_message
        super().__init__(f"{code} {server_message}")


class FTPProtocolFormatError(FTPError):
    """A server reply could not be decoded (PASV, EPSV, PWD, listing...)."""

    def __init__(self, what: str, reply: str):
        self.what = what
        self.reply = reply
        super().__init__(f"Invalid {what} response format: {reply!r}")


class FTPAuthenticationError(FTPError):
    """FTP authentication (login) failed."""

    def __init__(
        self,
        username: str,
        server_message: str = "",
        original_error: Exception = None
    ):
        self.username = username
        self.server_message = server_message
        message = f"Authentication failed for user '{username}'"
        if server_message:
            message = f"{message}: {server_message}"
        super().__init__(message, original_error)


class FTPDataConnectionError(FTPError):
    """Failed to establish or secure a data connection."""

    def __init__(self, host: str, port: Optional[int], original_error: Exception = None):
        self.host = host
        self.port = port
        if port is None:
            message = f"Failed to negotiate a data connection with {host}"
        else:
            message = f"Failed to open data connection to {host}:{port}"
        super().__init__(message, original_error)


class FTPSecurityError(FTPError):
    """TLS negotiation or TLS configuration problem."""


class FTPTaskError(FTPError):
    """A single file transfer failed."""

    def __init__(
        self,
        operation: str,
        local_path: str,
        remote_path: str,
        original_error: Exception = None
    ):
        self.operation = operation
        self.local_path = local_path
        self.remote_path = remote_path
        message = f"Failed to {operation} '{local_path}' <-> '{remote_path}'"
        super().__init__(message, original_error)


class FTPTransferError(FTPError):
    """One or more tasks of a parallel transfer failed.

    The message lists every failure message, one per line, in the order
    the failures were observed. Line breaks inside a failure message (from
    multi-line server replies) are flattened so each failure keeps one line.
    """

    def __init__(self, failures: List[Exception], outcomes: Optional[list] = None):
        self.failures = list(failures)
        self.outcomes = list(outcomes) if outcomes is not None else []
        super().__init__("\n".join(_single_line(str(error)) for error in self.failures))
