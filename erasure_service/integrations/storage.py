"""Storage adapters — user files, pre-deletion backups, and Redis sessions.

Subject ids are caller-supplied strings. Every adapter maps them so that two
different ids can never address the same directory or the same Redis keys.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from urllib.parse import quote

import redis.asyncio as aioredis

from erasure_service.config import settings

logger = logging.getLogger(__name__)

# Redis glob metacharacters used by SCAN MATCH
_GLOB_CHARS = re.compile(r"([\\*?\[\]])")


def _path_component(value: str) -> str:
    """Percent-encode an identifier into a single path component.

    The encoding is reversible, so distinct identifiers never share a name.
    """
    name = quote(value, safe="")
    if name in {"", ".", ".."}:
        msg = f"Unusable path component: {value!r}"
        raise ValueError(msg)
    return name


def _escape_glob(value: str) -> str:
    return _GLOB_CHARS.sub(r"\\\1", value)


def _key_str(key: str | bytes) -> str:
    return key.decode() if isinstance(key, bytes) else key


class LocalFileStore:
    """User files laid out as ``<root>/<encoded subject_id>/...``."""

    def __init__(self, root: str | Path | None = None) -> None:
        self._root = Path(root if root is not None else settings.storage.user_files_dir)

    def user_dir(self, subject_id: str) -> Path:
        return self._root / _path_component(subject_id)

    async def delete_user_files(self, subject_id: str) -> int:
        user_dir = self.user_dir(subject_id)
        if not user_dir.exists():
            return 0

        deleted = 0
        # Deepest paths first so directories are empty when removed
        for path in sorted(user_dir.rglob("*"), key=lambda p: len(p.parts), reverse=True):
            if path.is_dir():
                path.rmdir()
            else:
                path.unlink()
                deleted += 1
        user_dir.rmdir()
        logger.debug("Deleted %d files under %s", deleted, user_dir)
        return deleted


class LocalBackupStore:
    """Writes backup blobs into a directory and returns the file path."""

    def __init__(self, root: str | Path | None = None) -> None:
        self._root = Path(root if root is not None else settings.storage.backup_dir)

    async def save(self, name: str, blob: bytes) -> str:
        self._root.mkdir(parents=True, exist_ok=True)
        path = self._root / _path_component(name)
        path.write_bytes(blob)
        return str(path)


class RedisSessionStore:
    """Sessions stored as Redis keys ``<prefix><subject_id>:<session_id>``."""

    def __init__(self, redis: aioredis.Redis, prefix: str | None = None) -> None:
        self._redis = redis
        self._prefix = prefix if prefix is not None else settings.storage.session_key_prefix

    def session_pattern(self, subject_id: str) -> str:
        """SCAN pattern matching exactly this subject's session keys."""
        return f"{_escape_glob(self._prefix)}{_escape_glob(subject_id)}:*"

    async def terminate_user_sessions(self, subject_id: str) -> int:
        owned = f"{self._prefix}{subject_id}:"
        keys = [
            key
            async for key in self._redis.scan_iter(match=self.session_pattern(subject_id))
            # "<subject>:<session>" with a colon in the rest belongs to a longer subject id
            if ":" not in _key_str(key)[len(owned):]
        ]
        if not keys:
            return 0
        deleted = await self._redis.delete(*keys)
        return int(deleted)