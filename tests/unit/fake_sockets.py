"""Scripted socket doubles for unit tests.

FakeControlSocket replays canned server replies and records the
commands written to it. FakeDataSocket serves or collects bytes of a
data connection.
"""

import io
from typing import List

from ftpq.ftp.codec import ControlChannel
from ftpq.ftp.session import ControlSession, SessionConfig


class FakeControlSocket:
    """Control socket whose replies are known in advance."""

    def __init__(self, replies: str):
        self._replies = replies
        self.sent: List[str] = []
        self.closed = False
        self.timeout = 5

    def makefile(self, mode: str, encoding: str = None, errors: str = None):
        return io.StringIO(self._replies)

    def sendall(self, data: bytes) -> None:
        self.sent.append(data.decode("utf-8", "surrogateescape"))

    def settimeout(self, value) -> None:
        self.timeout = value

    def gettimeout(self):
        return self.timeout

    def close(self) -> None:
        self.closed = True

    @property
    def commands(self) -> List[str]:
        """Commands sent so far, without CRLF."""
        return [line.rstrip("\r\n") for line in self.sent]


class FakeDataSocket:
    """Data socket that serves a payload and records what is sent."""

    def __init__(self, payload: bytes = b"", fail_send: bool = False):
        self._payload = payload
        self._fail_send = fail_send
        self.received = bytearray()
        self.closed = False
        self.timeout = 5

    def makefile(self, mode: str):
        return io.BytesIO(self._payload)

    def sendall(self, data: bytes) -> None:
        if self._fail_send:
            raise ConnectionResetError("connection reset by peer")
        self.received.extend(data)

    def settimeout(self, value) -> None:
        self.timeout = value

    def close(self) -> None:
        self.closed = True


def reply_lines(*lines: str) -> str:
    """Join server reply lines with CRLF."""
    return "".join(f"{line}\r\n" for line in lines)


def make_session(*lines: str, host: str = "127.0.0.1"):
    """
    Build a ControlSession over a scripted control socket.

    Returns:
        Tuple of (session, fake control socket)
    """
    sock = FakeControlSocket(reply_lines(*lines))
    channel = ControlChannel(sock, host, 21)
    session = ControlSession(channel, SessionConfig(host=host, timeout=30))
    return session, sock
