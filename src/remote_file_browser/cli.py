"""
CLI Module - Command Line Interface for Remote File Browser
"""
import argparse
import getpass
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .core.connection_manager import ConnectionManager
from .core.error_classifier import describe
from .core.errors import ConfigurationError, RemoteFileError
from .core.file_sync import RemoteFileSync
from .database import open_repository
from .database.models import (
    AnonymousAuth,
    ConnectionConfig,
    KeyAuth,
    PasswordAuth,
    Protocol,
    SavedConnection,
    TlsMode,
)
from .utils.cache_paths import cleanup_all_caches, cleanup_connection_cache
from .utils.credential_manager import PASSPHRASE, PASSWORD, CredentialManager
from .utils.logging_setup import configure_logging

DEFAULT_DB_PATH = Path.home() / ".remote-file-browser" / "connections.db"


def _format_size(size: int) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return str(size)


class CLI:
    """Command Line Interface handler"""

    def __init__(self, credentials: Optional[CredentialManager] = None, manager_factory=None):
        self.credentials = credentials or CredentialManager()
        self.manager_factory = manager_factory or (
            lambda: ConnectionManager(credential_store=self.credentials)
        )
        self.commands = {
            "connections": self.list_connections,
            "add": self.add_connection,
            "remove": self.remove_connection,
            "ls": self.list_files,
            "cat": self.cat_file,
            "put": self.put_file,
            "rm": self.remove_file,
            "mv": self.move_file,
            "cp": self.copy_file,
            "touch": self.touch_file,
            "mkdir": self.make_directory,
            "health": self.show_health,
            "cleanup": self.cleanup,
        }
        self.repository = None

    # ------------------------------------------------------------------
    # Argument parsing
    # ------------------------------------------------------------------

    def build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="remote-file-browser",
            description="Browse and edit files on SFTP / FTP / FTPS servers",
        )
        parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
        parser.add_argument("--db", type=Path, default=DEFAULT_DB_PATH,
                            help="Saved connections database (default: %(default)s)")
        parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
        parser.add_argument("--log-dir", type=Path, default=None, help="Write a log file to this folder")
        sub = parser.add_subparsers(dest="command", metavar="command")

        sub.add_parser("connections", help="List saved connections")

        add = sub.add_parser("add", help="Save a connection")
        add.add_argument("name")
        add.add_argument("--protocol", choices=[p.value for p in Protocol], default="sftp")
        add.add_argument("--host", required=True)
        add.add_argument("--port", type=int)
        add.add_argument("--user", default="")
        add.add_argument("--remote-path", default="/")
        add.add_argument("--key", dest="key_path", help="Private key file (SFTP)")
        add.add_argument("--anonymous", action="store_true", help="Anonymous FTP login")
        add.add_argument("--tls", choices=[m.value for m in TlsMode], default="off", help="FTPS mode")
        add.add_argument("--active", action="store_true", help="Use active FTP mode")
        add.add_argument("--no-keep-alive", action="store_true")
        add.add_argument("--idle-timeout", type=float)
        add.add_argument("--ask-secret", action="store_true",
                         help="Prompt for the password (or key passphrase) and store it in the keyring")

        remove = sub.add_parser("remove", help="Delete a saved connection and its secrets")
        remove.add_argument("name")

        ls = sub.add_parser("ls", help="List a remote directory")
        ls.add_argument("name")
        ls.add_argument("path", nargs="?")

        cat = sub.add_parser("cat", help="Print a remote file")
        cat.add_argument("name")
        cat.add_argument("path")

        put = sub.add_parser("put", help="Upload a local file")
        put.add_argument("name")
        put.add_argument("local", type=Path)
        put.add_argument("remote")
        put.add_argument("--overwrite", action="store_true")

        rm = sub.add_parser("rm", help="Delete a remote file or directory")
        rm.add_argument("name")
        rm.add_argument("path")
        rm.add_argument("-r", "--recursive", action="store_true")

        mv = sub.add_parser("mv", help="Rename or move a remote file")
        mv.add_argument("name")
        mv.add_argument("old")
        mv.add_argument("new")
        mv.add_argument("--overwrite", action="store_true")

        cp = sub.add_parser("cp", help="Copy a remote file or directory")
        cp.add_argument("name")
        cp.add_argument("src")
        cp.add_argument("dst")
        cp.add_argument("-r", "--recursive", action="store_true")
        cp.add_argument("--overwrite", action="store_true")

        touch = sub.add_parser("touch", help="Create an empty remote file")
        touch.add_argument("name")
        touch.add_argument("path")
        touch.add_argument("--overwrite", action="store_true")

        mkdir = sub.add_parser("mkdir", help="Create a remote directory")
        mkdir.add_argument("name")
        mkdir.add_argument("path")

        health = sub.add_parser("health", help="Connect and show connection health")
        health.add_argument("name")

        cleanup = sub.add_parser("cleanup", help="Delete cached local copies")
        cleanup.add_argument("name", nargs="?", help="Only this connection (default: all)")

        return parser

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run CLI with provided arguments and return the exit status"""
        parser = self.build_parser()
        options = parser.parse_args(args)

        if options.command not in self.commands:
            parser.print_help()
            return 0

        configure_logging(options.log_level, options.log_dir)
        self.repository = open_repository(options.db)

        try:
            self.commands[options.command](options)
        except RemoteFileError as e:
            print(describe(e).format_short(), file=sys.stderr)
            return 1
        return 0

    # ------------------------------------------------------------------
    # Saved connections
    # ------------------------------------------------------------------

    def _saved(self, name: str) -> SavedConnection:
        saved = self.repository.get_by_name(name)
        if saved is None:
            raise ConfigurationError(f"No saved connection named '{name}'")
        return saved

    def list_connections(self, options):
        """Execute connections command"""
        saved = self.repository.get_all()
        if not saved:
            print("No saved connections.")
            return
        for item in saved:
            config = item.config
            print(f"{item.position:>3}  {item.display_name:<30} "
                  f"{config.protocol.value}://{config.identity.key}{config.remote_path}")

    def add_connection(self, options):
        """Execute add command"""
        if options.anonymous:
            auth = AnonymousAuth()
        elif options.key_path:
            auth = KeyAuth(key_path=options.key_path)
        else:
            auth = PasswordAuth()

        config = ConnectionConfig(
            protocol=options.protocol,
            host=options.host,
            username=options.user,
            auth=auth,
            port=options.port,
            remote_path=options.remote_path,
            tls_mode=options.tls,
            passive_mode=not options.active,
            enable_keep_alive=not options.no_keep_alive,
            idle_timeout=options.idle_timeout,
            name=options.name,
        )

        existing = self.repository.get_by_name(options.name)
        saved = SavedConnection(name=options.name, config=config,
                                id=existing.id if existing else None)
        if not self.repository.save(saved):
            raise ConfigurationError(f"Could not save connection '{options.name}'")

        if options.ask_secret and not options.anonymous:
            kind = PASSPHRASE if options.key_path else PASSWORD
            secret = getpass.getpass(f"{kind.capitalize()} for {config.identity.key}: ")
            self.credentials.set(config.identity.credential_key, secret, kind)
        print(f"Saved {saved.display_name}")

    def remove_connection(self, options):
        """Execute remove command"""
        saved = self._saved(options.name)
        self.repository.delete(saved.id)
        self.credentials.delete_credentials(saved.config.identity.credential_key)
        print(f"Removed {saved.display_name}")

    # ------------------------------------------------------------------
    # Remote commands
    # ------------------------------------------------------------------

    def _connect(self, name: str) -> ConnectionManager:
        config = self._saved(name).config
        manager = self.manager_factory()
        try:
            manager.connect(config)
        except RemoteFileError:
            manager.close()
            raise
        return manager

    def list_files(self, options):
        """Execute ls command"""
        with self._connect(options.name) as manager:
            for entry in manager.list_files(options.path):
                modified = entry.modified.strftime("%Y-%m-%d %H:%M") if entry.modified else " " * 16
                kind = "d" if entry.is_dir else "-"
                size = "" if entry.is_dir else _format_size(entry.size)
                print(f"{kind} {modified} {size:>10}  {entry.name}")

    def cat_file(self, options):
        """Execute cat command"""
        with self._connect(options.name) as manager:
            sys.stdout.buffer.write(manager.read_file(options.path))
            sys.stdout.flush()

    def put_file(self, options):
        """Execute put command"""
        with self._connect(options.name) as manager:
            RemoteFileSync(manager).push_local_file(options.local, options.remote, options.overwrite)
            print(f"Uploaded {options.local} to {options.remote}")

    def remove_file(self, options):
        """Execute rm command"""
        with self._connect(options.name) as manager:
            manager.delete_file(options.path, recursive=options.recursive)
            print(f"Deleted {options.path}")

    def move_file(self, options):
        """Execute mv command"""
        with self._connect(options.name) as manager:
            manager.rename_file(options.old, options.new, overwrite=options.overwrite)
            print(f"Renamed {options.old} to {options.new}")

    def copy_file(self, options):
        """Execute cp command"""
        with self._connect(options.name) as manager:
            count = manager.copy_file(options.src, options.dst,
                                      recursive=options.recursive, overwrite=options.overwrite)
            print(f"Copied {options.src} to {options.dst} ({count} file(s))")

    def touch_file(self, options):
        """Execute touch command"""
        with self._connect(options.name) as manager:
            manager.create_file(options.path, overwrite=options.overwrite)
            print(f"Created {options.path}")

    def make_directory(self, options):
        """Execute mkdir command"""
        with self._connect(options.name) as manager:
            manager.create_directory(options.path)
            print(f"Created {options.path}")

    def show_health(self, options):
        """Execute health command"""
        with self._connect(options.name) as manager:
            manager.list_files()
            for key, value in manager.get_connection_health().to_dict().items():
                print(f"{key:<22} {value}")

    def cleanup(self, options):
        """Execute cleanup command"""
        if options.name:
            count = cleanup_connection_cache(self._saved(options.name).config.identity)
        else:
            count = cleanup_all_caches()
        print(f"Cleaned up {count} temp files")


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point for CLI"""
    cli = CLI()
    return cli.run(args)


if __name__ == "__main__":
    sys.exit(main())
