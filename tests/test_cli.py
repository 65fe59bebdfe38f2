"""
Unit tests for the command line front end.
"""
from unittest.mock import Mock, patch

import pytest

from remote_file_browser.cli import CLI
from remote_file_browser.core.connection_manager import ConnectionManager

from conftest import FakeCredentialStore


@pytest.fixture
def credentials():
    return Mock()


@pytest.fixture
def cli(server, credentials):
    store = FakeCredentialStore({"sftp-alice-h-22:password": "secret"})
    return CLI(
        credentials=credentials,
        manager_factory=lambda: ConnectionManager(
            credential_store=store,
            session_factory=server.create_session,
            sleep=lambda seconds: None,
        ),
    )


@pytest.fixture
def run(cli, tmp_path):
    db = str(tmp_path / "connections.db")

    def run(*args):
        return cli.run(["--db", db, *args])
    return run


@pytest.fixture
def saved(run):
    assert run("add", "box", "--host", "h", "--user", "alice", "--no-keep-alive") == 0


class TestSavedConnections:
    """Test add / list / remove of saved connections."""

    def test_no_command_prints_help(self, run, capsys):
        assert run() == 0
        assert "usage:" in capsys.readouterr().out

    def test_add_and_list(self, run, capsys):
        assert run("add", "box", "--host", "h", "--user", "alice") == 0
        assert run("add", "mirror", "--protocol", "ftp", "--host", "ftp.example.com",
                   "--anonymous", "--tls", "explicit") == 0

        assert run("connections") == 0

        out = capsys.readouterr().out
        assert "Saved [SFTP] box" in out
        assert "sftp://alice@h:22/" in out
        assert "ftp://anonymous@ftp.example.com:21/" in out

    def test_add_stores_secret_in_keyring(self, run, credentials):
        with patch("remote_file_browser.cli.getpass.getpass", return_value="hunter2"):
            assert run("add", "box", "--host", "h", "--user", "alice", "--ask-secret") == 0
        credentials.set.assert_called_once_with("sftp-alice-h-22", "hunter2", "password")

    def test_add_key_connection_stores_passphrase(self, run, credentials):
        with patch("remote_file_browser.cli.getpass.getpass", return_value="phrase"):
            assert run("add", "box", "--host", "h", "--user", "alice",
                       "--key", "~/.ssh/id_rsa", "--ask-secret") == 0
        credentials.set.assert_called_once_with("sftp-alice-h-22", "phrase", "passphrase")

    def test_invalid_connection(self, run, capsys):
        assert run("add", "bad", "--protocol", "ftp", "--host", "h", "--user", "u",
                   "--key", "/k") == 1
        assert "Key authentication is only available for SFTP" in capsys.readouterr().err

    def test_remove(self, run, saved, credentials, capsys):
        assert run("remove", "box") == 0
        credentials.delete_credentials.assert_called_once_with("sftp-alice-h-22")

        assert run("connections") == 0
        assert "No saved connections." in capsys.readouterr().out

    def test_unknown_connection(self, run, capsys):
        assert run("ls", "nope") == 1
        assert "No saved connection named 'nope'" in capsys.readouterr().err


class TestRemoteCommands:
    """Test commands that talk to the server."""

    def test_ls(self, run, saved, server, capsys):
        server.add_file("/readme.md", b"x" * 2048)
        server.add_dir("/src")

        assert run("ls", "box", "/") == 0

        lines = capsys.readouterr().out.splitlines()
        assert lines[0].startswith("d ") and lines[0].endswith("src")
        assert "2.0 KB" in lines[1] and lines[1].endswith("readme.md")

    def test_cat(self, run, saved, server, capsysbinary):
        server.add_file("/a.txt", b"hello\n")
        assert run("cat", "box", "/a.txt") == 0
        assert capsysbinary.readouterr().out.endswith(b"hello\n")

    def test_cat_missing_file(self, run, saved, capsys):
        assert run("cat", "box", "/missing.txt") == 1
        assert "Not found:" in capsys.readouterr().err

    def test_put(self, run, saved, server, tmp_path):
        source = tmp_path / "up.txt"
        source.write_bytes(b"data")

        assert run("put", "box", str(source), "/up.txt") == 0
        assert server.files["/up.txt"] == b"data"
        assert run("put", "box", str(source), "/up.txt") == 1
        assert run("put", "box", str(source), "/up.txt", "--overwrite") == 0

    def test_rm_mv_mkdir(self, run, saved, server):
        server.add_file("/a.txt", b"a")
        server.add_file("/d/x.txt", b"x")

        assert run("mv", "box", "/a.txt", "/b.txt") == 0
        assert run("mkdir", "box", "/new") == 0
        assert run("rm", "box", "/d") == 1
        assert run("rm", "box", "-r", "/d") == 0

        assert "/b.txt" in server.files and "/a.txt" not in server.files
        assert "/new" in server.dirs
        assert "/d" not in server.dirs

    def test_health(self, run, saved, capsys):
        assert run("health", "box") == 0
        out = capsys.readouterr().out
        assert "is_connected" in out
        assert "success_count" in out

    def test_connect_failure(self, run, saved, server, capsys):
        server.password = "changed"
        assert run("ls", "box") == 1
        assert "Access denied" in capsys.readouterr().err

    def test_cleanup(self, run, saved, capsys):
        with patch("remote_file_browser.cli.cleanup_all_caches", return_value=3):
            assert run("cleanup") == 0
        with patch("remote_file_browser.cli.cleanup_connection_cache", return_value=1) as cleanup:
            assert run("cleanup", "box") == 0
        assert cleanup.call_args[0][0].key == "alice@h:22"
        out = capsys.readouterr().out
        assert "Cleaned up 3 temp files" in out
        assert "Cleaned up 1 temp files" in out

    def test_cp_and_touch(self, run, saved, server, capsys):
        server.add_file("/a.txt", b"a")
        server.add_file("/d/x.txt", b"x")

        assert run("cp", "box", "/a.txt", "/b.txt") == 0
        assert run("cp", "box", "/a.txt", "/b.txt") == 1
        assert run("cp", "box", "-r", "/d", "/e") == 0
        assert run("touch", "box", "/empty.txt") == 0
        assert run("touch", "box", "/a.txt") == 1
        assert run("touch", "box", "/a.txt", "--overwrite") == 0

        assert server.files["/b.txt"] == b"a"
        assert server.files["/e/x.txt"] == b"x"
        assert server.files["/empty.txt"] == b""
        assert server.files["/a.txt"] == b""
        assert "Copied /d to /e (1 file(s))" in capsys.readouterr().out
