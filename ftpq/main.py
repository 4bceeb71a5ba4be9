"""Command line entry point for ftpq.

Connects to a server, runs one command (listing, single transfer or a
parallel batch) and disconnects.
"""

import argparse
import getpass
import logging
import sys
from pathlib import Path, PurePosixPath
from typing import List, Optional

from . import __version__
from .config.credentials import CredentialManager
from .config.paths import get_log_file_path
from .config.settings import AppSettings, SettingsManager
from .ftp.exceptions import FTPError, FTPTransferError
from .ftp.session import ControlSession, SessionConfig
from .ftp.transfer import TransferTask, get_transfer_summary
from .utils.logging import setup_logging
from .utils.validators import (
    validate_certificate_file,
    validate_host,
    validate_parallel,
    validate_port,
    validate_timeout,
)


def build_parser(settings: AppSettings) -> argparse.ArgumentParser:
    """Command line parser with defaults taken from saved settings."""
    parser = argparse.ArgumentParser(prog="ftpq", description="FTP/FTPS client with parallel transfers")
    parser.add_argument("--host", default=settings.last_host, help="server host name or address")
    parser.add_argument("--port", type=int, default=settings.last_port, help="control port")
    parser.add_argument("--user", default=settings.last_username, help="user name")
    parser.add_argument("--password", help="password (default: keyring, then prompt)")
    parser.add_argument("--cert", default=settings.cert_file, help="PEM certificate of the server")
    parser.add_argument("--tls", action="store_true", default=settings.use_tls, help="secure with AUTH TLS")
    parser.add_argument("--timeout", type=int, default=settings.timeout, help="connect timeout in seconds")
    parser.add_argument("--save", action="store_true", help="remember these connection settings")
    parser.add_argument("-v", "--verbose", action="store_true", help="log protocol traffic")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("features", help="show FEAT features")
    commands.add_parser("forget", help="delete the saved password and remembered connection")

    ls_parser = commands.add_parser("ls", help="list a remote directory")
    ls_parser.add_argument("path", nargs="?", default="")
    ls_parser.add_argument("--names", action="store_true", help="names only (NLST)")

    get_parser = commands.add_parser("get", help="download one file")
    get_parser.add_argument("remote")
    get_parser.add_argument("local", nargs="?")
    get_parser.add_argument("--offset", type=int, default=0, help="resume at this byte")

    put_parser = commands.add_parser("put", help="upload one file")
    put_parser.add_argument("local")
    put_parser.add_argument("remote", nargs="?")

    batch_parser = commands.add_parser("batch", help="transfer many files in parallel")
    batch_parser.add_argument("--put", nargs="+", default=[], metavar="LOCAL", help="files to upload")
    batch_parser.add_argument("--get", nargs="+", default=[], metavar="REMOTE", help="files to download")
    batch_parser.add_argument(
        "-j", "--parallel", type=int, default=settings.parallel_connections,
        help="number of connections, -1 for one per file"
    )

    return parser


def printable(name: str) -> str:
    """Render a remote name for the terminal, replacing bytes that are not UTF-8."""
    return name.encode("utf-8", "surrogateescape").decode("utf-8", "replace")


class Application:
    """Runs one command line invocation."""

    def __init__(self, argv: Optional[List[str]] = None, settings_manager: Optional[SettingsManager] = None):
        self._settings_manager = settings_manager or SettingsManager()
        self._settings = self._settings_manager.load()
        self._credential_manager = CredentialManager()
        self._args = build_parser(self._settings).parse_args(argv)

        level = logging.DEBUG if self._args.verbose else self._settings.logging_level
        self._logger = setup_logging(level=level, log_file=get_log_file_path())

    def _validate(self) -> Optional[str]:
        """Return the first problem with the arguments, if any."""
        args = self._args
        checks = [
            validate_host(args.host),
            validate_port(args.port),
            validate_timeout(args.timeout),
        ]
        if args.tls and args.command != "forget":
            checks.append(validate_certificate_file(args.cert))
        if args.command == "batch":
            checks.append(validate_parallel(args.parallel))

        for is_valid, error in checks:
            if not is_valid:
                return error
        return None

    def _password(self) -> str:
        args = self._args
        if args.password is not None:
            return args.password
        saved = self._credential_manager.get_password(args.host, args.port, args.user)
        if saved is not None:
            return saved
        if args.user == "anonymous":
            return "anonymous"
        return getpass.getpass(f"Password for {args.user}@{args.host}: ")

    def _connect(self, password: str) -> ControlSession:
        args = self._args
        config = SessionConfig(
            host=args.host,
            port=args.port,
            timeout=args.timeout,
            cert_file=args.cert or None,
        )
        session = ControlSession.dial(config)
        try:
            if args.tls:
                session.authenticate_tls()
            session.login(args.user, password)
        except FTPError:
            session.close()
            raise
        return session

    def _save_connection_settings(self, password: str) -> None:
        args = self._args
        self._settings_manager.remember_connection(
            args.host, args.port, args.user, args.timeout,
            cert_file=args.cert or "",
            use_tls=args.tls,
        )
        if password and not self._credential_manager.save_password(args.host, args.port, args.user, password):
            self._logger.warning("Password could not be saved to the keyring")
        self._logger.info(f"Saved connection settings for {args.host}")

    def _run_command(self, session: ControlSession) -> int:
        args = self._args

        if args.command == "features":
            for name, description in sorted(session.features.items()):
                print(f"{name} {description}".rstrip())

        elif args.command == "ls":
            if args.names:
                for name in session.name_list(args.path):
                    print(printable(name))
            else:
                for entry in session.list(args.path):
                    stamp = entry.time.strftime("%Y-%m-%d %H:%M") if entry.time else "-"
                    print(f"{entry.entry_type.value:<6} {entry.size:>12} {stamp} {printable(entry.name)}")

        elif args.command == "get":
            local = args.local or PurePosixPath(args.remote).name
            with session.retrieve(args.remote, args.offset) as response:
                with open(local, "ab" if args.offset else "wb") as target:
                    while True:
                        block = response.read(ControlSession.BLOCK_SIZE)
                        if not block:
                            break
                        target.write(block)

        elif args.command == "put":
            remote = args.remote or Path(args.local).name
            with open(args.local, "rb") as source:
                session.store(remote, source)

        elif args.command == "batch":
            tasks = [TransferTask.store(local, Path(local).name) for local in args.put]
            tasks += [TransferTask.retrieve(remote, PurePosixPath(remote).name) for remote in args.get]
            try:
                outcomes = session.multiple_transfer(tasks, args.parallel)
            except FTPTransferError as e:
                summary = get_transfer_summary(e.outcomes)
                print(f"{summary['failed']} of {summary['total']} transfers failed:", file=sys.stderr)
                print(str(e), file=sys.stderr)
                return 1
            summary = get_transfer_summary(outcomes)
            print(f"{summary['successful']} files, {summary['bytes_transferred']} bytes")

        return 0

    def _forget(self) -> int:
        args = self._args
        if not self._credential_manager.delete_password(args.host, args.port, args.user):
            self._logger.info(f"No saved password for {args.user}@{args.host}:{args.port}")
        self._settings_manager.forget_connection()
        print(f"Forgot {args.user}@{args.host}:{args.port}")
        return 0

    def run(self) -> int:
        """Execute the command. Returns the process exit code."""
        error = self._validate()
        if error:
            print(error, file=sys.stderr)
            return 2

        if self._args.command == "forget":
            return self._forget()

        password = self._password()
        try:
            session = self._connect(password)
        except FTPError as e:
            self._logger.error(f"Connection failed: {e}")
            return 1

        if self._args.save:
            self._save_connection_settings(password)

        try:
            with session:
                return self._run_command(session)
        except (FTPError, OSError) as e:
            self._logger.error(f"{self._args.command} failed: {e}")
            return 1


def main(argv: Optional[List[str]] = None) -> int:
    """
    Application entry point.

    Returns:
        Exit code (0 for success)
    """
    try:
        return Application(argv).run()
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
