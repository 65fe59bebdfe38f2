"""
Unit tests for RemoteFileSync (local copies and the editor save bridge).
"""
import pytest

from remote_file_browser.core.errors import ConflictError, NotFoundError, RemoteConnectionError
from remote_file_browser.core.file_sync import RemoteFileSync
from remote_file_browser.database.models import ConnectionConfig, PasswordAuth
from remote_file_browser.utils.cache_paths import connection_cache_dir


@pytest.fixture
def sync(connected, tmp_path):
    return RemoteFileSync(connected, cache_base=tmp_path)


class TestOpenAndSave:
    """Test download, registration and upload on save."""

    def test_open_downloads_into_connection_cache(self, sync, connected, server, tmp_path):
        server.add_file("/var/www/index.html", b"<h1>hi</h1>")

        local = sync.open_remote_file("/var/www/index.html")

        assert local == connection_cache_dir(connected.identity, tmp_path) / "var" / "www" / "index.html"
        assert local.read_bytes() == b"<h1>hi</h1>"
        assert sync.remote_path_for(local) == "/var/www/index.html"

    def test_open_without_refresh_keeps_local_copy(self, sync, server):
        server.add_file("/a.txt", b"v1")
        local = sync.open_remote_file("/a.txt")
        local.write_bytes(b"local edit")
        server.files["/a.txt"] = b"v2"

        assert sync.open_remote_file("/a.txt", refresh=False).read_bytes() == b"local edit"
        assert sync.open_remote_file("/a.txt").read_bytes() == b"v2"

    def test_save_uploads(self, sync, server):
        server.add_file("/a.txt", b"old")
        local = sync.open_remote_file("/a.txt")

        assert sync.on_document_saved(local, "new text")
        assert server.files["/a.txt"] == b"new text"

    def test_save_of_unregistered_file_ignored(self, sync, tmp_path, server):
        assert not sync.on_document_saved(tmp_path / "notes.txt", "x")
        assert server.files == {}

    def test_save_refused_for_other_connection(self, sync, connected, server):
        server.add_file("/a.txt", b"old")
        local = sync.open_remote_file("/a.txt")
        connected.connect(ConnectionConfig(protocol="sftp", host="h", username="alice",
                                           port=2222, auth=PasswordAuth(password="secret"),
                                           enable_keep_alive=False))

        with pytest.raises(ConflictError) as exc_info:
            sync.on_document_saved(local, "new")

        assert "alice@h:22" in str(exc_info.value)
        assert server.files["/a.txt"] == b"old"

    def test_open_requires_connection(self, manager, tmp_path):
        with pytest.raises(RemoteConnectionError):
            RemoteFileSync(manager, cache_base=tmp_path).open_remote_file("/a.txt")


class TestRelocate:
    """Test following remote renames."""

    def test_relocate_file(self, sync, connected, server):
        server.add_file("/a.txt", b"a")
        local = sync.open_remote_file("/a.txt")
        connected.rename_file("/a.txt", "/b.txt")

        assert sync.relocate("/a.txt", "/b.txt") == 1

        assert not local.exists()
        new_local = sync.open_remote_file("/b.txt", refresh=False)
        assert new_local.read_bytes() == b"a"
        assert sync.remote_path_for(new_local) == "/b.txt"

    def test_relocate_directory_children(self, sync, server):
        server.add_file("/docs/one.txt", b"1")
        server.add_file("/docs/sub/two.txt", b"2")
        server.add_file("/other.txt", b"o")
        sync.open_remote_file("/docs/one.txt")
        sync.open_remote_file("/docs/sub/two.txt")
        sync.open_remote_file("/other.txt")

        assert sync.relocate("/docs", "/archive/docs") == 2

        remote_paths = sorted(entry.remote_path for entry in sync.registered_files().values())
        assert remote_paths == ["/archive/docs/one.txt", "/archive/docs/sub/two.txt", "/other.txt"]


class TestPushAndForget:
    """Test uploads of arbitrary local files and registry cleanup."""

    def test_push_local_file(self, sync, server, tmp_path):
        source = tmp_path / "upload.txt"
        source.write_bytes(b"payload")

        sync.push_local_file(source, "/up.txt")
        assert server.files["/up.txt"] == b"payload"

        with pytest.raises(ConflictError):
            sync.push_local_file(source, "/up.txt")

        source.write_bytes(b"payload 2")
        sync.push_local_file(source, "/up.txt", overwrite=True)
        assert server.files["/up.txt"] == b"payload 2"

    def test_push_missing_local_file(self, sync, tmp_path):
        with pytest.raises(NotFoundError):
            sync.push_local_file(tmp_path / "nope.txt", "/x.txt")

    def test_forget_connection_and_clear(self, sync, connected, server):
        server.add_file("/a.txt")
        server.add_file("/b.txt")
        sync.open_remote_file("/a.txt")
        sync.open_remote_file("/b.txt")

        assert sync.forget_connection(connected.identity) == 2
        assert sync.registered_files() == {}

        sync.open_remote_file("/a.txt")
        sync.clear()
        assert sync.registered_files() == {}
