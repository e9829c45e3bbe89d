"""Core record types, identifier aliases and the sampler error hierarchy."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime

# Unique record identifier (stable across runs), e.g. "source_b::factual::definitions/x.txt".
RecordId = str
# Identifier for the source that produced a record, e.g. "source_a".
SourceId = str
# Identifier for a category label, e.g. "factual".
CategoryId = str
# Normalized metadata value, e.g. "2025-02-25".
MetaValue = str
# Normalized taxonomy value, e.g. "definitions".
TaxonomyValue = str
# Sentence text extracted from sections.
Sentence = str
# Key for per-source recipe scheduling, e.g. "source_b_anchor".
RecipeKey = str
# Warning or log message text.
LogMessage = str
# Value for key-value metadata sampling.
KvpValue = str
# File path string.
PathString = str
# Deterministic grouping key for locality-aware ordering.
GroupKey = str
# Deterministic per-item ordering key used during grouping.
ItemOrderKey = str
# Component used to build snapshot hashes.
HashPart = str


class SamplerError(Exception):
    """Base class for every error raised by the sampling toolkit."""


class ConfigurationError(SamplerError):
    """Raised when a configuration value is invalid."""


class SplitStoreError(SamplerError):
    """Raised when a split store cannot be read, written or verified."""


class SectionRole(enum.Enum):
    """Role a section plays inside a record."""

    ANCHOR = "anchor"
    CONTEXT = "context"


@dataclass
class RecordSection:
    """One titled or untitled block of text in a record, with its sentences."""

    role: SectionRole
    heading: str | None
    text: str
    sentences: list[Sentence] = field(default_factory=list)


@dataclass
class QualityScore:
    """Quality signals attached to a record."""

    trust: float = 1.0


@dataclass
class DataRecord:
    """A single sampled record produced by a source."""

    id: RecordId
    source: SourceId
    created_at: datetime
    updated_at: datetime
    quality: QualityScore = field(default_factory=QualityScore)
    taxonomy: list[TaxonomyValue] = field(default_factory=list)
    sections: list[RecordSection] = field(default_factory=list)
    meta_prefix: str | None = None


@dataclass
class SourceCursor:
    """Position of a source's incremental stream."""

    last_seen: datetime
    revision: int = 0


@dataclass
class SourceSnapshot:
    """A page of records together with the cursor for the next page."""

    records: list[DataRecord]
    cursor: SourceCursor