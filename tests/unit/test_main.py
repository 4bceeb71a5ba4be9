"""Unit tests for the command line application."""

import pytest
from unittest.mock import MagicMock, patch

from ftpq.config.settings import SettingsManager
from ftpq.ftp.exceptions import FTPAuthenticationError, FTPTaskError, FTPTransferError
from ftpq.ftp.transfer import OutcomeKind, TransferDirection, TransferOutcome
from ftpq.main import Application, printable


@pytest.fixture(autouse=True)
def log_file(tmp_path):
    """Keep log output inside the test directory."""
    with patch("ftpq.main.get_log_file_path", return_value=tmp_path / "ftpq.log"):
        yield


@pytest.fixture
def settings_manager(temp_settings_file):
    return SettingsManager(config_path=temp_settings_file)


@pytest.fixture
def credentials():
    with patch("ftpq.main.CredentialManager") as manager_class:
        manager = manager_class.return_value
        manager.get_password.return_value = None
        manager.save_password.return_value = True
        yield manager


@pytest.fixture
def session():
    with patch("ftpq.main.ControlSession.dial") as mock_dial:
        fake = MagicMock()
        fake.__enter__.return_value = fake
        fake.__exit__.return_value = False
        mock_dial.return_value = fake
        yield fake


def make_app(settings_manager, *argv):
    return Application(["--host", "127.0.0.1", *argv], settings_manager)


class TestValidation:
    """Tests for argument validation."""

    def test_invalid_port(self, settings_manager, credentials, capsys):
        app = make_app(settings_manager, "--port", "0", "features")

        assert app.run() == 2
        assert "Port must be between" in capsys.readouterr().err

    def test_tls_requires_certificate(self, settings_manager, credentials):
        app = make_app(settings_manager, "--tls", "features")
        assert app.run() == 2

    def test_batch_parallel_zero(self, settings_manager, credentials):
        app = make_app(settings_manager, "batch", "-j", "0", "--get", "a.txt")
        assert app.run() == 2


class TestPassword:
    """Tests for password resolution."""

    def test_argument_wins(self, settings_manager, credentials):
        credentials.get_password.return_value = "saved"
        app = make_app(settings_manager, "--user", "bob", "--password", "given", "features")
        assert app._password() == "given"

    def test_keyring_before_prompt(self, settings_manager, credentials):
        credentials.get_password.return_value = "saved"
        app = make_app(settings_manager, "--user", "bob", "features")

        assert app._password() == "saved"
        credentials.get_password.assert_called_once_with("127.0.0.1", 21, "bob")

    def test_anonymous_default(self, settings_manager, credentials):
        app = make_app(settings_manager, "features")
        assert app._password() == "anonymous"

    @patch("ftpq.main.getpass.getpass", return_value="typed")
    def test_prompt_last(self, mock_getpass, settings_manager, credentials):
        app = make_app(settings_manager, "--user", "bob", "features")
        assert app._password() == "typed"


class TestRun:
    """Tests for command execution."""

    def test_features(self, settings_manager, credentials, session, capsys):
        session.features = {"UTF8": "", "REST": "STREAM"}

        assert make_app(settings_manager, "features").run() == 0

        session.login.assert_called_once_with("anonymous", "anonymous")
        session.authenticate_tls.assert_not_called()
        assert capsys.readouterr().out.splitlines() == ["REST STREAM", "UTF8"]

    def test_login_failure(self, settings_manager, credentials, session):
        session.login.side_effect = FTPAuthenticationError("anonymous", "Login incorrect")

        assert make_app(settings_manager, "features").run() == 1
        session.close.assert_called_once()

    def test_tls_with_certificate(self, settings_manager, credentials, session, sample_certificate):
        app = make_app(settings_manager, "--tls", "--cert", str(sample_certificate), "features")

        assert app.run() == 0
        session.authenticate_tls.assert_called_once()

    def test_save_remembers_connection(self, settings_manager, credentials, session):
        app = make_app(settings_manager, "--port", "2121", "--user", "bob", "--password", "pw", "--save", "features")

        assert app.run() == 0

        saved = SettingsManager(config_path=settings_manager.config_path).load()
        assert saved.last_host == "127.0.0.1"
        assert saved.last_port == 2121
        assert saved.last_username == "bob"
        credentials.save_password.assert_called_once_with("127.0.0.1", 2121, "bob", "pw")

    def test_batch_builds_tasks(self, settings_manager, credentials, session, local_files):
        session.multiple_transfer.return_value = []
        local = str(local_files / "1.txt")

        app = make_app(settings_manager, "batch", "-j", "2", "--put", local, "--get", "dir/3.txt")
        assert app.run() == 0

        tasks, parallel = session.multiple_transfer.call_args[0]
        assert parallel == 2
        assert [(t.direction, t.remote_path) for t in tasks] == [
            (TransferDirection.STORE, "1.txt"),
            (TransferDirection.RETRIEVE, "dir/3.txt"),
        ]
        assert tasks[1].local_path == "3.txt"

    def test_batch_failure(self, settings_manager, credentials, session, capsys):
        error = FTPTaskError("retrieve", "a.txt", "a.txt", OSError("550 No such file"))
        outcome = TransferOutcome(OutcomeKind.TASK_FAILED, error=error)
        session.multiple_transfer.side_effect = FTPTransferError([error], [outcome])

        assert make_app(settings_manager, "batch", "--get", "a.txt").run() == 1
        assert "1 of 1 transfers failed" in capsys.readouterr().err

    def test_ls_names_with_undecodable_bytes(self, settings_manager, credentials, session, capsys):
        session.name_list.return_value = ["caf\udce9.txt", "plain.txt"]

        assert make_app(settings_manager, "ls", "--names").run() == 0
        assert capsys.readouterr().out.splitlines() == ["caf�.txt", "plain.txt"]


class TestForget:
    """Tests for the forget command."""

    def test_forget_clears_password_and_settings(self, settings_manager, credentials, session):
        settings_manager.remember_connection("127.0.0.1", 2121, "bob", 45, use_tls=True)
        credentials.delete_password.return_value = True

        app = make_app(settings_manager, "--port", "2121", "--user", "bob", "forget")
        assert app.run() == 0

        credentials.delete_password.assert_called_once_with("127.0.0.1", 2121, "bob")
        saved = SettingsManager(config_path=settings_manager.config_path).load()
        assert saved.last_host == ""
        assert saved.use_tls is False
        assert saved.timeout == 30

    def test_forget_does_not_connect(self, settings_manager, credentials):
        credentials.delete_password.return_value = False

        with patch("ftpq.main.ControlSession.dial") as mock_dial:
            assert make_app(settings_manager, "forget").run() == 0

        mock_dial.assert_not_called()
        credentials.get_password.assert_not_called()


def test_printable_keeps_valid_text():
    assert printable("résumé.pdf") == "résumé.pdf"
    assert printable("caf\udce9") == "caf�"
