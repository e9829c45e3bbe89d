# tripletkit

This package has building blocks for reproducible training-data sampling:

- `tripletkit.types`: the record types (`DataRecord`, `RecordSection`, `SectionRole`, `QualityScore`, `SourceCursor`, `SourceSnapshot`) and the error hierarchy (`SamplerError`, `ConfigurationError`, `SplitStoreError`).
- `tripletkit.splits`: deterministic assignment of records to train, validation and test splits, an in-memory store for epoch and sampler state, and binary encoders and decoders for that state.
- `tripletkit.filestore`: `FileSplitStore`, which keeps the same state in a single append-only file (`KeyValueFile`).
- `tripletkit.filestream`: `FileStream`, which reads the files under a directory one page at a time, in a stable pseudo-random order.
- `tripletkit.textutil`: whitespace normalisation, a sentence splitter, and `make_section`.

The package has no third-party dependencies.

## Installation

```
pip install .
```

To run the test suite as well:

```
pip install ".[test]"
pytest
```

## Split assignment

```python
from tripletkit.splits import DeterministicSplitStore, SplitLabel, SplitRatios

store = DeterministicSplitStore(SplitRatios(train=0.8, validation=0.1, test=0.1), seed=42)
label = store.ensure("source_a::record_1")
assert label in (SplitLabel.TRAIN, SplitLabel.VALIDATION, SplitLabel.TEST)

store.upsert("source_a::record_1", SplitLabel.VALIDATION)
assert store.label_for("source_a::record_1") is SplitLabel.VALIDATION
```

The label is derived from a hash of the record id and the seed, so it is the same on every run. `ensure` always returns the derived label. `label_for` returns an assignment made with `upsert` if there is one, and the derived label otherwise. `SplitRatios()` defaults to 0.8 / 0.1 / 0.1. The three ratios must add up to 1.0; if they do not, `ConfigurationError` is raised.

`DeterministicSplitStore` also keeps epoch metadata (`PersistedSplitMeta`), epoch hash orderings (`PersistedSplitHashes`) and sampler runtime state (`PersistedSamplerState`) in memory. It stores copies of them and hands back copies.

## Persistent state

`FileSplitStore` derives split labels in the same way and keeps its state in a single file. If the path is an existing directory, the store uses `split_store.bin` inside it. Missing parent directories are created.

When an existing file is opened again, its version, seed and ratios must match the values it was created with. If any of them differ, `SplitStoreError` is raised.

```python
from tripletkit.filestore import FileSplitStore
from tripletkit.splits import PersistedSplitMeta, SplitLabel, SplitRatios

store = FileSplitStore.open("state/split_store.bin", SplitRatios(), 123)
store.store_epoch_meta({SplitLabel.TRAIN: PersistedSplitMeta(epoch=3, offset=7, hashes_checksum=42)})
print(store.load_epoch_meta()[SplitLabel.TRAIN].offset)  # 7
```

On a `FileSplitStore`, `upsert` writes nothing, because labels are always derived. `label_for` returns a label found under the record's split key, and otherwise the derived label. `FileSplitStore.default_path()` returns `.tripletkit/split_store.bin`.

## Streaming files

```python
from datetime import datetime, timezone
from pathlib import Path

from tripletkit.filestream import FileStream, is_text_file
from tripletkit.types import DataRecord, SectionRole
from tripletkit.textutil import make_section


def build_record(path: Path):
    if not is_text_file(path):
        return None
    now = datetime.now(timezone.utc)
    return DataRecord(
        id=path.name,
        source="corpus",
        created_at=now,
        updated_at=now,
        sections=[make_section(SectionRole.CONTEXT, None, path.read_text())],
    )


stream = FileStream("corpus")
snapshot = stream.stream_incremental(None, 16, build_record)
next_page = stream.stream_incremental(snapshot.cursor, 16, build_record)
```

`build_record` is called with each file path. It returns a `DataRecord`, or `None` to skip the file. Any exception it raises is passed on to the caller.

Files are visited in a stable order, sorted by `stable_path_shuffle_key`. The cursor moves forward through that order and wraps back to the start at the end; a cursor that is past the end starts again from the beginning. Symbolic links are not followed unless you call `with_follow_symlinks(True)`. The helpers `file_mtime` and `file_times` return file timestamps in UTC.

## Text helpers

```python
from tripletkit.textutil import normalize_inline_whitespace, sentences

normalize_inline_whitespace("Alpha\n\n  Beta\tGamma")  # 'Alpha Beta Gamma'
sentences("Price closed at 3.14. Outlook improved.")
# ['Price closed at 3.14.', 'Outlook improved.']
sentences("BRK.B rallied while RDS.A lagged.")
# ['BRK.B rallied while RDS.A lagged.']
sentences("Wait... really? Yes.")
# ['Wait...', 'really?', 'Yes.']
```

A blank line always ends a sentence.

## What this package does not do

The package provides primitives for a sampler, not the sampler itself. It does not:

- register data sources or run ingestion
- build triplet or text batches, or prefetch them in the background
- download datasets from remote hubs

Code that uses the package supplies these. The stores here only keep the state such a sampler would save: epoch cursors, hash orderings and runtime state.