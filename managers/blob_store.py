"""Filesystem-backed blob stores for private and public asset bytes"""

import logging
import os
from pathlib import Path
from typing import Optional, Union

from errors import StorageError

logger = logging.getLogger("AssetPipeline")

MIME_MAP = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
}


def canonicalize_path(path: Union[str, Path], must_exist: bool = True) -> Path:
    """Resolve path to absolute real path (handles symlinks).

    Raises:
        ValueError: If path cannot be resolved
    """
    try:
        return Path(path).resolve(strict=must_exist)
    except (OSError, RuntimeError) as e:
        raise ValueError(f"Cannot resolve path {path}: {e}")


def is_within(child_path: Union[str, Path], parent_path: Union[str, Path], child_must_exist: bool = True) -> bool:
    """Check if child_path is within parent_path using real path resolution.

    Both paths are canonicalized (symlinks resolved) before comparison,
    so a key cannot escape the store root via '..' or a symlink.
    """
    try:
        child_real = canonicalize_path(child_path, must_exist=child_must_exist)
        parent_real = canonicalize_path(parent_path, must_exist=True)
        return child_real.is_relative_to(parent_real)
    except (ValueError, OSError):
        return False


def guess_content_type(key: str) -> str:
    return MIME_MAP.get(Path(key).suffix.lower(), "application/octet-stream")


class FilesystemBlobStore:
    """Key/value byte store rooted at a directory.

    Keys are relative POSIX paths such as ``sprites/npc/guard_v1.webp``.
    Writes go to a temp file in the target directory and are renamed into
    place, so a retried put of the same key either fully replaces the old
    bytes or leaves them untouched.
    """

    def __init__(self, root: Union[str, Path], base_url: Optional[str] = None, name: str = "blob"):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.base_url = base_url.rstrip("/") if base_url else None
        self.name = name
        logger.info(f"Initialized {name} store at {self.root}")

    def _resolve(self, key: str) -> Path:
        if not key or key.startswith("/") or "\\" in key:
            raise StorageError(f"Invalid storage key: '{key}'", {"key": key, "store": self.name})
        path = self.root / key
        if not is_within(path, self.root, child_must_exist=False):
            raise StorageError(f"Storage key escapes the {self.name} store: '{key}'", {"key": key, "store": self.name})
        return path

    def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        """Write bytes under key, atomically replacing any previous value.

        Args:
            key: Relative storage key
            data: Bytes to store
            content_type: MIME type; inferred from the key's extension when omitted

        Returns:
            The content type recorded for the blob

        Raises:
            StorageError: If the key is invalid or the write fails
        """
        path = self._resolve(key)
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "wb") as f:
                f.write(data)
            temp_path.replace(path)
        except OSError as e:
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError:
                    pass
            raise StorageError(f"Failed to write '{key}' to {self.name} store: {e}", {"key": key, "store": self.name})
        content_type = content_type or guess_content_type(key)
        logger.debug(f"Stored {len(data)} bytes at {self.name}:{key} ({content_type})")
        return content_type

    def get(self, key: str) -> bytes:
        path = self._resolve(key)
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            raise StorageError(f"'{key}' not found in {self.name} store", {"key": key, "store": self.name})
        except OSError as e:
            raise StorageError(f"Failed to read '{key}' from {self.name} store: {e}", {"key": key, "store": self.name})

    def exists(self, key: str) -> bool:
        return self._resolve(key).is_file()

    def delete(self, key: str) -> bool:
        """Remove a blob. Returns False if it was not there."""
        path = self._resolve(key)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete '{key}' from {self.name} store: {e}", {"key": key, "store": self.name})

    def url_for(self, key: str) -> str:
        """Public URL for a key. Stores without a base URL return a file:// URL."""
        if self.base_url:
            return f"{self.base_url}/{key}"
        return (self.root / key).resolve().as_uri()


def create_blob_store(root: Union[str, Path], base_url: Optional[str] = None, name: str = "blob") -> FilesystemBlobStore:
    """Build a store, expanding ~ and environment variables in root"""
    return FilesystemBlobStore(Path(os.path.expandvars(str(root))).expanduser(), base_url, name)
