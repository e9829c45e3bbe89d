"""File-backed split store persisting metadata, epoch state and sampler state."""

from __future__ import annotations

import struct
import threading
from dataclasses import dataclass
from pathlib import Path

from .splits import (
    ALL_SPLITS,
    EpochStateStore,
    PersistedSamplerState,
    PersistedSplitHashes,
    PersistedSplitMeta,
    SamplerStateStore,
    SplitLabel,
    SplitRatios,
    SplitStore,
    decode_epoch_hashes,
    decode_epoch_meta,
    decode_label,
    decode_payload,
    decode_sampler_state,
    derive_label_for_id,
    encode_epoch_hashes,
    encode_epoch_meta,
    encode_payload,
    encode_sampler_state,
    ratios_close,
)
from .types import RecordId, SplitStoreError

DEFAULT_STORE_DIR = ".tripletkit"
DEFAULT_STORE_FILENAME = "split_store.bin"
STORE_VERSION = 1
META_KEY = b"meta"
SAMPLER_STATE_KEY = b"sampler_state"
SPLIT_PREFIX = b"split:"
EPOCH_META_PREFIX = b"epoch_meta:"
EPOCH_HASHES_PREFIX = b"epoch_hashes:"

_STORE_META = struct.Struct("<BQfff")


class KeyValueFile:
    """Append-only key/value log on disk; the last write of a key wins."""

    _HEADER = struct.Struct("<II")

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._index: dict[bytes, tuple[int, int]] = {}
        self._end = 0
        try:
            self._path.touch(exist_ok=True)
            self._load()
        except OSError as exc:
            raise SplitStoreError(str(exc)) from exc

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        header_size = self._HEADER.size
        with self._path.open("r+b") as fh:
            data = fh.read()
            pos = 0
            while pos + header_size <= len(data):
                key_len, value_len = self._HEADER.unpack_from(data, pos)
                key_start = pos + header_size
                end = key_start + key_len + value_len
                if end > len(data):
                    break
                key = data[key_start : key_start + key_len]
                self._index[key] = (key_start + key_len, value_len)
                pos = end
            if pos != len(data):
                # Drop a partially written trailing entry.
                fh.truncate(pos)
        self._end = pos

    def read(self, key: bytes) -> bytes | None:
        """Return the latest value stored under key, or None."""
        with self._lock:
            location = self._index.get(bytes(key))
            if location is None:
                return None
            offset, length = location
            try:
                with self._path.open("rb") as fh:
                    fh.seek(offset)
                    value = fh.read(length)
            except OSError as exc:
                raise SplitStoreError(str(exc)) from exc
        if len(value) != length:
            raise SplitStoreError("store entry truncated")
        return value

    def write(self, key: bytes, value: bytes) -> None:
        """Append value under key."""
        key = bytes(key)
        value = bytes(value)
        entry = self._HEADER.pack(len(key), len(value)) + key + value
        with self._lock:
            try:
                with self._path.open("ab") as fh:
                    fh.write(entry)
            except OSError as exc:
                raise SplitStoreError(str(exc)) from exc
            value_offset = self._end + self._HEADER.size + len(key)
            self._index[key] = (value_offset, len(value))
            self._end += len(entry)


@dataclass(frozen=True)
class _StoreMeta:
    version: int
    seed: int
    ratios: SplitRatios


def _encode_store_meta(meta: _StoreMeta) -> bytes:
    body = _STORE_META.pack(
        meta.version,
        meta.seed,
        meta.ratios.train,
        meta.ratios.validation,
        meta.ratios.test,
    )
    return encode_payload(body)


def _decode_store_meta(data: bytes) -> _StoreMeta:
    raw = decode_payload(data)
    try:
        version, seed, train, validation, test = _STORE_META.unpack(raw)
    except struct.error as exc:
        raise SplitStoreError(f"failed to decode split store metadata: {exc}") from exc
    return _StoreMeta(version, seed, SplitRatios(train, validation, test))


class FileSplitStore(SplitStore, EpochStateStore, SamplerStateStore):
    """Split store persisted to a single file for repeatable runs."""

    def __init__(self, store: KeyValueFile, ratios: SplitRatios, seed: int) -> None:
        self._store = store
        self._ratios = ratios
        self._seed = seed

    @classmethod
    def open(cls, path: str | Path, ratios: SplitRatios, seed: int) -> FileSplitStore:
        """Open or create a store at path, verifying its seed, ratios and version."""
        ratios = ratios.normalized()
        path = coerce_store_path(Path(path))
        ensure_parent_dir(path)
        store = cls(KeyValueFile(path), ratios, seed)
        store._verify_metadata()
        return store

    @classmethod
    def default_path(cls) -> Path:
        """Store path inside the default store directory."""
        return cls.default_path_in_dir(DEFAULT_STORE_DIR)

    @classmethod
    def default_path_in_dir(cls, directory: str | Path) -> Path:
        """Store path inside a chosen directory."""
        return Path(directory) / DEFAULT_STORE_FILENAME

    @property
    def ratios(self) -> SplitRatios:
        return self._ratios

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def data_store(self) -> KeyValueFile:
        """The underlying key/value file."""
        return self._store

    def __repr__(self) -> str:
        return f"FileSplitStore(ratios={self._ratios!r}, seed={self._seed})"

    def _verify_metadata(self) -> None:
        data = self._store.read(META_KEY)
        if data is None:
            meta = _StoreMeta(STORE_VERSION, self._seed, self._ratios)
            self._store.write(META_KEY, _encode_store_meta(meta))
            return
        meta = _decode_store_meta(data)
        if meta.version != STORE_VERSION:
            raise SplitStoreError(
                f"split store version mismatch (expected {STORE_VERSION}, found {meta.version})"
            )
        if meta.seed != self._seed:
            raise SplitStoreError(
                f"split store seed mismatch (expected {self._seed}, found {meta.seed})"
            )
        if not ratios_close(meta.ratios, self._ratios):
            raise SplitStoreError("split store ratios mismatch")

    def label_for(self, record_id: RecordId) -> SplitLabel | None:
        try:
            data = self._store.read(split_key(record_id))
            if data is not None:
                return decode_label(data)
        except SplitStoreError:
            pass
        return derive_label_for_id(record_id, self._seed, self._ratios)

    def upsert(self, record_id: RecordId, label: SplitLabel) -> None:
        # Assignments are derived deterministically, so nothing is written.
        return None

    def ensure(self, record_id: RecordId) -> SplitLabel:
        return derive_label_for_id(record_id, self._seed, self._ratios)

    def load_epoch_meta(self) -> dict[SplitLabel, PersistedSplitMeta]:
        meta: dict[SplitLabel, PersistedSplitMeta] = {}
        for label in ALL_SPLITS:
            data = self._store.read(epoch_meta_key(label))
            entry = decode_epoch_meta(data) if data is not None else None
            if entry is not None:
                meta[label] = entry
        return meta

    def load_epoch_hashes(self, label: SplitLabel) -> PersistedSplitHashes | None:
        data = self._store.read(epoch_hashes_key(label))
        return decode_epoch_hashes(data) if data is not None else None

    def store_epoch_meta(self, meta: dict[SplitLabel, PersistedSplitMeta]) -> None:
        for label in ALL_SPLITS:
            self._store.write(epoch_meta_key(label), encode_epoch_meta(meta.get(label)))

    def store_epoch_hashes(self, label: SplitLabel, hashes: PersistedSplitHashes) -> None:
        self._store.write(epoch_hashes_key(label), encode_epoch_hashes(hashes))

    def load_sampler_state(self) -> PersistedSamplerState | None:
        data = self._store.read(SAMPLER_STATE_KEY)
        return decode_sampler_state(data) if data is not None else None

    def store_sampler_state(self, state: PersistedSamplerState) -> None:
        self._store.write(SAMPLER_STATE_KEY, encode_sampler_state(state))


def split_key(record_id: RecordId) -> bytes:
    """Store key for a record's split assignment."""
    return SPLIT_PREFIX + record_id.encode("utf-8")


def epoch_meta_key(label: SplitLabel) -> bytes:
    """Store key for a split's epoch metadata."""
    return EPOCH_META_PREFIX + label.value.encode("ascii")


def epoch_hashes_key(label: SplitLabel) -> bytes:
    """Store key for a split's epoch hash ordering."""
    return EPOCH_HASHES_PREFIX + label.value.encode("ascii")


def coerce_store_path(path: str | Path) -> Path:
    """Use the default file name inside path when path is a directory."""
    path = Path(path)
    if path.is_dir():
        return path / DEFAULT_STORE_FILENAME
    return path


def ensure_parent_dir(path: str | Path) -> None:
    """Create the parent directory of path if needed."""
    parent = Path(path).parent
    try:
        parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise SplitStoreError(str(exc)) from exc