"""
Cache Paths - Local cache locations for downloaded remote files

Each connection gets its own directory below ``<tmp>/remote-file-browser``,
named after a filesystem-safe version of ``username-host-port``, so cached
files from different servers never collide.
"""
import re
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Optional, Union, TYPE_CHECKING
import logging

from ..constants import CACHE_DIR_NAME, SANITIZED_NAME_MAX_LENGTH

if TYPE_CHECKING:
    from ..database.models import ConnectionIdentity

logger = logging.getLogger(__name__)

WINDOWS_RESERVED_NAMES = frozenset(
    ["CON", "PRN", "AUX", "NUL"]
    + [f"COM{i}" for i in range(1, 10)]
    + [f"LPT{i}" for i in range(1, 10)]
)

_SANITIZE_RULES = [
    (re.compile(r"@"), "-at-"),
    (re.compile(r"[:/\\]"), "-"),
    (re.compile(r'[<>"|?*]'), "_"),
    (re.compile(r"\s+"), "_"),
    (re.compile(r"\.+"), "."),
    (re.compile(r"^[.-]"), "_"),
]


def sanitize_name(name: str, is_windows: Optional[bool] = None) -> str:
    """
    Make a string safe to use as a single directory name.

    Args:
        name: Raw name, e.g. "user@host:22"
        is_windows: Apply the Windows reserved-name rule (default: current platform)

    Returns:
        Sanitized name, at most 50 characters
    """
    sanitized = name
    for pattern, replacement in _SANITIZE_RULES:
        sanitized = pattern.sub(replacement, sanitized)
    sanitized = sanitized[:SANITIZED_NAME_MAX_LENGTH]

    if is_windows is None:
        is_windows = sys.platform == "win32"
    if is_windows and sanitized.upper() in WINDOWS_RESERVED_NAMES:
        sanitized = f"_{sanitized}"
    return sanitized


def cache_root(base: Optional[Union[str, Path]] = None) -> Path:
    """Root of all connection caches: ``<base or tmp>/remote-file-browser``."""
    return Path(base or tempfile.gettempdir()) / CACHE_DIR_NAME


def connection_cache_dir(identity: "ConnectionIdentity", base: Optional[Union[str, Path]] = None) -> Path:
    return cache_root(base) / identity.cache_dir_name


def local_path_for(
    identity: "ConnectionIdentity",
    remote_path: str,
    base: Optional[Union[str, Path]] = None,
) -> Path:
    """
    Local cache path mirroring ``remote_path`` below the connection directory.

    ``..`` segments are resolved against the remote root first, so the result
    never escapes the connection directory.
    """
    from ..protocols.base import normalize_remote_path

    relative = normalize_remote_path(remote_path).lstrip("/")
    directory = connection_cache_dir(identity, base)
    return directory.joinpath(*relative.split("/")) if relative else directory


def is_cache_path(path: Union[str, Path], base: Optional[Union[str, Path]] = None) -> bool:
    """True if ``path`` lies inside the cache root."""
    try:
        Path(path).resolve().relative_to(cache_root(base).resolve())
        return True
    except ValueError:
        return False


def _delete_tree(directory: Path) -> int:
    if not directory.exists():
        return 0
    count = sum(1 for item in directory.rglob("*") if item.is_file())
    shutil.rmtree(directory)
    return count


def cleanup_connection_cache(identity: "ConnectionIdentity", base: Optional[Union[str, Path]] = None) -> int:
    """
    Delete the cached files of one connection.

    Returns:
        Number of files removed
    """
    count = _delete_tree(connection_cache_dir(identity, base))
    logger.info(f"Cleaned up {count} temp files for {identity.key}")
    return count


def cleanup_all_caches(base: Optional[Union[str, Path]] = None) -> int:
    """
    Delete the whole cache root.

    Returns:
        Number of files removed
    """
    count = _delete_tree(cache_root(base))
    logger.info(f"Cleaned up {count} temp files")
    return count
