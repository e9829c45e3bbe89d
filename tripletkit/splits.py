"""Split labels, ratios, deterministic split assignment and persisted sampler state."""

from __future__ import annotations

import copy
import enum
import struct
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from .types import ConfigurationError, RecordId, SourceId, SplitStoreError

T = TypeVar("T")

PAYLOAD_PREFIX = 0xBC
EPOCH_RECORD_TOMBSTONE = 0x00
EPOCH_META_RECORD_VERSION = 0x01
EPOCH_HASH_RECORD_VERSION = 0x01
SAMPLER_STATE_RECORD_VERSION = 0x01

_MASK64 = (1 << 64) - 1
_U64_MAX_F = float(_MASK64)


class SplitLabel(enum.Enum):
    """Logical dataset partitions used during sampling."""

    TRAIN = "train"
    VALIDATION = "validation"
    TEST = "test"


ALL_SPLITS: tuple[SplitLabel, ...] = tuple(SplitLabel)

_LABEL_CODES = {ord("0"): SplitLabel.TRAIN, ord("1"): SplitLabel.VALIDATION, ord("2"): SplitLabel.TEST}


@dataclass(frozen=True)
class SplitRatios:
    """Fractions of records assigned to train, validation and test."""

    train: float = 0.8
    validation: float = 0.1
    test: float = 0.1

    def normalized(self) -> SplitRatios:
        """Return these ratios, raising ConfigurationError unless they sum to 1.0."""
        total = self.train + self.validation + self.test
        if abs(total - 1.0) > 1e-6:
            raise ConfigurationError("split ratios must sum to 1.0")
        return self


@dataclass
class PersistedSplitMeta:
    """Persisted epoch cursor metadata for one split."""

    epoch: int
    offset: int
    hashes_checksum: int


@dataclass
class PersistedSplitHashes:
    """Persisted deterministic epoch hash ordering for one split."""

    checksum: int
    hashes: list[int] = field(default_factory=list)


@dataclass
class PersistedSamplerState:
    """Persisted sampler runtime state: cursors, recipe indices and RNG state."""

    source_cycle_idx: int
    source_record_cursors: list[tuple[SourceId, int]]
    source_epoch: int
    rng_state: int
    triplet_recipe_rr_idx: int
    text_recipe_rr_idx: int
    source_stream_cursors: list[tuple[SourceId, int]]


class SplitStore(ABC):
    """Maps record identifiers to split labels deterministically."""

    @property
    @abstractmethod
    def ratios(self) -> SplitRatios:
        """The configured split ratios."""

    @abstractmethod
    def label_for(self, record_id: RecordId) -> SplitLabel | None:
        """Return the split label for a record if known or derivable."""

    @abstractmethod
    def upsert(self, record_id: RecordId, label: SplitLabel) -> None:
        """Record an explicit split assignment."""

    @abstractmethod
    def ensure(self, record_id: RecordId) -> SplitLabel:
        """Return the split label for a record, deriving one when needed."""


class EpochStateStore(ABC):
    """Persistence backend for epoch metadata and epoch hash orderings."""

    @abstractmethod
    def load_epoch_meta(self) -> dict[SplitLabel, PersistedSplitMeta]:
        """Load the split to epoch metadata map."""

    @abstractmethod
    def load_epoch_hashes(self, label: SplitLabel) -> PersistedSplitHashes | None:
        """Load the persisted epoch hashes for one split, if any."""

    @abstractmethod
    def store_epoch_meta(self, meta: dict[SplitLabel, PersistedSplitMeta]) -> None:
        """Persist the split to epoch metadata map."""

    @abstractmethod
    def store_epoch_hashes(self, label: SplitLabel, hashes: PersistedSplitHashes) -> None:
        """Persist the epoch hash list for one split."""


class SamplerStateStore(ABC):
    """Persistence backend for sampler runtime state."""

    @abstractmethod
    def load_sampler_state(self) -> PersistedSamplerState | None:
        """Load the persisted sampler state, if present."""

    @abstractmethod
    def store_sampler_state(self, state: PersistedSamplerState) -> None:
        """Persist the sampler state."""


class DeterministicSplitStore(SplitStore, EpochStateStore, SamplerStateStore):
    """In-memory split store with deterministic assignment derivation."""

    def __init__(self, ratios: SplitRatios, seed: int) -> None:
        self._ratios = ratios.normalized()
        self._seed = seed
        self._lock = threading.Lock()
        self._assignments: dict[RecordId, SplitLabel] = {}
        self._epoch_meta: dict[SplitLabel, PersistedSplitMeta] = {}
        self._epoch_hashes: dict[SplitLabel, PersistedSplitHashes] = {}
        self._sampler_state: PersistedSamplerState | None = None

    @property
    def ratios(self) -> SplitRatios:
        return self._ratios

    @property
    def seed(self) -> int:
        return self._seed

    def label_for(self, record_id: RecordId) -> SplitLabel | None:
        with self._lock:
            label = self._assignments.get(record_id)
        if label is not None:
            return label
        return derive_label_for_id(record_id, self._seed, self._ratios)

    def upsert(self, record_id: RecordId, label: SplitLabel) -> None:
        with self._lock:
            self._assignments[record_id] = label

    def ensure(self, record_id: RecordId) -> SplitLabel:
        return derive_label_for_id(record_id, self._seed, self._ratios)

    def load_epoch_meta(self) -> dict[SplitLabel, PersistedSplitMeta]:
        with self._lock:
            return copy.deepcopy(self._epoch_meta)

    def load_epoch_hashes(self, label: SplitLabel) -> PersistedSplitHashes | None:
        with self._lock:
            return copy.deepcopy(self._epoch_hashes.get(label))

    def store_epoch_meta(self, meta: dict[SplitLabel, PersistedSplitMeta]) -> None:
        with self._lock:
            self._epoch_meta = copy.deepcopy(meta)

    def store_epoch_hashes(self, label: SplitLabel, hashes: PersistedSplitHashes) -> None:
        with self._lock:
            self._epoch_hashes[label] = copy.deepcopy(hashes)

    def load_sampler_state(self) -> PersistedSamplerState | None:
        with self._lock:
            return copy.deepcopy(self._sampler_state)

    def store_sampler_state(self, state: PersistedSamplerState) -> None:
        with self._lock:
            self._sampler_state = copy.deepcopy(state)


def _rotl(value: int, shift: int) -> int:
    return ((value << shift) | (value >> (64 - shift))) & _MASK64


def _siphash13(data: bytes, k0: int = 0, k1: int = 0) -> int:
    """SipHash-1-3 of data with the given 64-bit keys."""
    v0 = k0 ^ 0x736F6D6570736575
    v1 = k1 ^ 0x646F72616E646F6D
    v2 = k0 ^ 0x6C7967656E657261
    v3 = k1 ^ 0x7465646279746573

    def rounds(count: int) -> None:
        nonlocal v0, v1, v2, v3
        for _ in range(count):
            v0 = (v0 + v1) & _MASK64
            v1 = _rotl(v1, 13) ^ v0
            v0 = _rotl(v0, 32)
            v2 = (v2 + v3) & _MASK64
            v3 = _rotl(v3, 16) ^ v2
            v0 = (v0 + v3) & _MASK64
            v3 = _rotl(v3, 21) ^ v0
            v2 = (v2 + v1) & _MASK64
            v1 = _rotl(v1, 17) ^ v2
            v2 = _rotl(v2, 32)

    full = len(data) - len(data) % 8
    for start in range(0, full, 8):
        word = int.from_bytes(data[start : start + 8], "little")
        v3 ^= word
        rounds(1)
        v0 ^= word
    last = int.from_bytes(data[full:], "little") | ((len(data) & 0xFF) << 56)
    v3 ^= last
    rounds(1)
    v0 ^= last
    v2 ^= 0xFF
    rounds(3)
    return v0 ^ v1 ^ v2 ^ v3


def _f32(value: float) -> float:
    return struct.unpack("<f", struct.pack("<f", value))[0]


def derive_label_for_id(record_id: RecordId, seed: int, ratios: SplitRatios) -> SplitLabel:
    """Derive a stable split label from the record id and seed."""
    data = record_id.encode("utf-8") + b"\xff" + seed.to_bytes(8, "little")
    value = float(_siphash13(data)) / _U64_MAX_F
    train_cut = _f32(ratios.train)
    val_cut = train_cut + _f32(ratios.validation)
    if value < train_cut:
        return SplitLabel.TRAIN
    if value < val_cut:
        return SplitLabel.VALIDATION
    return SplitLabel.TEST


def ratios_close(a: SplitRatios, b: SplitRatios) -> bool:
    """True if two ratio sets are equal within a small tolerance."""
    diff = abs(a.train - b.train) + abs(a.validation - b.validation) + abs(a.test - b.test)
    return diff < 1e-5


def decode_label(data: bytes) -> SplitLabel:
    """Decode a persisted split label ('0', '1' or '2')."""
    label = _LABEL_CODES.get(data[0]) if data else None
    if label is None:
        raise SplitStoreError("invalid split label")
    return label


def encode_payload(data: bytes) -> bytes:
    """Prefix a serialized payload with the payload marker byte."""
    return bytes([PAYLOAD_PREFIX]) + bytes(data)


def decode_payload(data: bytes) -> bytes:
    """Strip and verify the payload marker byte."""
    data = bytes(data)
    if not data or data[0] != PAYLOAD_PREFIX:
        raise SplitStoreError("payload missing expected prefix")
    return data[1:]


class _Writer:
    def __init__(self) -> None:
        self._parts: list[bytes] = []

    def u64(self, value: int) -> _Writer:
        self._parts.append(struct.pack("<Q", value))
        return self

    def text(self, value: str) -> _Writer:
        raw = value.encode("utf-8")
        self.u64(len(raw))
        self._parts.append(raw)
        return self

    def cursors(self, items: list[tuple[SourceId, int]]) -> _Writer:
        self.u64(len(items))
        for source_id, position in items:
            self.text(source_id).u64(position)
        return self

    def getvalue(self) -> bytes:
        return b"".join(self._parts)


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    def _take(self, size: int) -> bytes:
        end = self._pos + size
        if end > len(self._data):
            raise ValueError("unexpected end of payload")
        chunk = self._data[self._pos : end]
        self._pos = end
        return chunk

    def u64(self) -> int:
        return struct.unpack("<Q", self._take(8))[0]

    def text(self) -> str:
        return self._take(self.u64()).decode("utf-8")

    def cursors(self) -> list[tuple[SourceId, int]]:
        return [(self.text(), self.u64()) for _ in range(self.u64())]

    def finish(self) -> None:
        if self._pos != len(self._data):
            raise ValueError("trailing bytes in payload")


def _encode_record(version: int, body: bytes) -> bytes:
    return bytes([version]) + encode_payload(body)


def _decode_record(
    data: bytes,
    version: int,
    kind: str,
    parse: Callable[[_Reader], T],
    *,
    tombstone: bool,
) -> T | None:
    data = bytes(data)
    if not data or (tombstone and data[0] == EPOCH_RECORD_TOMBSTONE):
        return None
    if data[0] != version:
        raise SplitStoreError(f"{kind} record version mismatch")
    raw = decode_payload(data[1:])
    reader = _Reader(raw)
    try:
        result = parse(reader)
        reader.finish()
    except ValueError as exc:
        raise SplitStoreError(f"corrupt {kind} record: {exc}") from exc
    return result


def encode_epoch_meta(meta: PersistedSplitMeta | None) -> bytes:
    """Encode epoch metadata; None encodes as a tombstone."""
    if meta is None:
        return bytes([EPOCH_RECORD_TOMBSTONE])
    body = _Writer().u64(meta.epoch).u64(meta.offset).u64(meta.hashes_checksum).getvalue()
    return _encode_record(EPOCH_META_RECORD_VERSION, body)


def decode_epoch_meta(data: bytes) -> PersistedSplitMeta | None:
    """Decode epoch metadata; empty data or a tombstone yields None."""
    return _decode_record(
        data,
        EPOCH_META_RECORD_VERSION,
        "epoch meta",
        lambda r: PersistedSplitMeta(epoch=r.u64(), offset=r.u64(), hashes_checksum=r.u64()),
        tombstone=True,
    )


def encode_epoch_hashes(hashes: PersistedSplitHashes) -> bytes:
    """Encode an epoch hash ordering."""
    writer = _Writer().u64(hashes.checksum).u64(len(hashes.hashes))
    for value in hashes.hashes:
        writer.u64(value)
    return _encode_record(EPOCH_HASH_RECORD_VERSION, writer.getvalue())


def _parse_hashes(reader: _Reader) -> PersistedSplitHashes:
    checksum = reader.u64()
    return PersistedSplitHashes(checksum=checksum, hashes=[reader.u64() for _ in range(reader.u64())])


def decode_epoch_hashes(data: bytes) -> PersistedSplitHashes | None:
    """Decode an epoch hash ordering; empty data or a tombstone yields None."""
    return _decode_record(
        data, EPOCH_HASH_RECORD_VERSION, "epoch hashes", _parse_hashes, tombstone=True
    )


def encode_sampler_state(state: PersistedSamplerState) -> bytes:
    """Encode sampler runtime state."""
    body = (
        _Writer()
        .u64(state.source_cycle_idx)
        .cursors(state.source_record_cursors)
        .u64(state.source_epoch)
        .u64(state.rng_state)
        .u64(state.triplet_recipe_rr_idx)
        .u64(state.text_recipe_rr_idx)
        .cursors(state.source_stream_cursors)
        .getvalue()
    )
    return _encode_record(SAMPLER_STATE_RECORD_VERSION, body)


def _parse_sampler_state(reader: _Reader) -> PersistedSamplerState:
    return PersistedSamplerState(
        source_cycle_idx=reader.u64(),
        source_record_cursors=reader.cursors(),
        source_epoch=reader.u64(),
        rng_state=reader.u64(),
        triplet_recipe_rr_idx=reader.u64(),
        text_recipe_rr_idx=reader.u64(),
        source_stream_cursors=reader.cursors(),
    )


def decode_sampler_state(data: bytes) -> PersistedSamplerState | None:
    """Decode sampler runtime state; empty data yields None."""
    return _decode_record(
        data,
        SAMPLER_STATE_RECORD_VERSION,
        "sampler state",
        _parse_sampler_state,
        tombstone=False,
    )