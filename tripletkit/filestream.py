"""Filesystem transport: paged, pseudo-randomly ordered scans of files under a root."""

from __future__ import annotations

import hashlib
import os
from collections.abc import Callable, Iterator
from datetime import datetime, timezone
from pathlib import Path

from .types import DataRecord, SourceCursor, SourceSnapshot

RecordBuilder = Callable[[Path], "DataRecord | None"]


class FileStream:
    """Incrementally scans the files under a root directory."""

    def __init__(self, root: str | Path, *, follow_links: bool = False) -> None:
        self.root = Path(root)
        self.follow_links = follow_links

    def with_follow_symlinks(self, follow_links: bool) -> FileStream:
        """Configure symlink traversal and return this stream."""
        self.follow_links = follow_links
        return self

    def _files(self) -> Iterator[Path]:
        root = self.root
        if not root.is_dir():
            if _is_regular_file(root, self.follow_links):
                yield root
            return
        for dirpath, _dirnames, filenames in os.walk(root, followlinks=self.follow_links):
            for name in filenames:
                path = Path(dirpath) / name
                if _is_regular_file(path, self.follow_links):
                    yield path

    def stream_incremental(
        self,
        cursor: SourceCursor | None,
        limit: int | None,
        build_record: RecordBuilder,
    ) -> SourceSnapshot:
        """Build one page of records, starting where the cursor left off.

        Files are visited in a stable hash order and the cursor wraps around
        at the end. ``build_record`` may return None to skip a file; any
        exception it raises propagates.
        """
        candidates = sorted(self._files(), key=lambda p: (stable_path_shuffle_key(p), str(p)))
        total = len(candidates)
        start = cursor.revision if cursor is not None else 0
        if total > 0 and start >= total:
            start = 0
        maximum = total if limit is None else limit

        records: list[DataRecord] = []
        for step in range(total):
            record = build_record(candidates[(start + step) % total])
            if record is None:
                continue
            records.append(record)
            if len(records) >= maximum:
                break

        last_seen = max((r.updated_at for r in records), default=None)
        if last_seen is None:
            last_seen = datetime.now(timezone.utc)
        next_start = (start + len(records)) % total if total else 0
        return SourceSnapshot(
            records=records,
            cursor=SourceCursor(last_seen=last_seen, revision=next_start),
        )


def _is_regular_file(path: Path, follow_links: bool) -> bool:
    if not follow_links and path.is_symlink():
        return False
    return path.is_file()


def is_text_file(path: str | Path) -> bool:
    """True if the path has a ``.txt`` extension, in any letter case."""
    return Path(path).suffix.lower() == ".txt"


def _to_utc(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def file_mtime(path: str | Path) -> datetime | None:
    """Best-effort modification time of a file, or None if unavailable."""
    try:
        return _to_utc(os.stat(path).st_mtime)
    except OSError:
        return None


def file_times(path: str | Path) -> tuple[datetime, datetime]:
    """Best-effort (created_at, updated_at) pair for a file."""
    try:
        info = os.stat(path)
    except OSError:
        now = datetime.now(timezone.utc)
        return now, now
    updated_at = _to_utc(info.st_mtime)
    birth = getattr(info, "st_birthtime", None)
    created_at = _to_utc(birth) if birth is not None else updated_at
    return created_at, updated_at


def _stable_hash_path(seed: int, path: str | Path) -> int:
    digest = hashlib.blake2b(digest_size=8)
    digest.update(seed.to_bytes(8, "little"))
    digest.update(os.fsencode(os.fspath(path)))
    return int.from_bytes(digest.digest(), "little")


def stable_path_shuffle_key(path: str | Path) -> int:
    """Stable 64-bit hash used to pseudo-randomize file iteration order."""
    return _stable_hash_path(0, path)