import pytest

from tripletkit.splits import (
    EPOCH_HASH_RECORD_VERSION,
    EPOCH_META_RECORD_VERSION,
    EPOCH_RECORD_TOMBSTONE,
    PAYLOAD_PREFIX,
    SAMPLER_STATE_RECORD_VERSION,
    DeterministicSplitStore,
    PersistedSamplerState,
    PersistedSplitHashes,
    PersistedSplitMeta,
    SplitLabel,
    SplitRatios,
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
from tripletkit.types import ConfigurationError, SplitStoreError


def _state(prefix="s"):
    return PersistedSamplerState(
        source_cycle_idx=1,
        source_record_cursors=[(prefix, 2)],
        source_epoch=3,
        rng_state=4,
        triplet_recipe_rr_idx=5,
        text_recipe_rr_idx=6,
        source_stream_cursors=[(prefix, 7)],
    )


def test_split_ratios_reject_non_unit_sum():
    invalid = SplitRatios(train=0.6, validation=0.3, test=0.3)
    with pytest.raises(ConfigurationError, match="split ratios must sum to 1.0"):
        DeterministicSplitStore(invalid, 1)


def test_default_ratios_normalize_to_themselves():
    assert SplitRatios().normalized() == SplitRatios(train=0.8, validation=0.1, test=0.1)


def test_zero_test_ratio_never_assigns_test_labels():
    store = DeterministicSplitStore(SplitRatios(train=0.5, validation=0.5, test=0.0), 7)
    seen = set()
    for idx in range(20_000):
        label = store.ensure(f"record_{idx}")
        assert label != SplitLabel.TEST
        seen.add(label)
        if len(seen) == 2:
            break
    assert seen == {SplitLabel.TRAIN, SplitLabel.VALIDATION}


def test_full_train_ratio_assigns_only_train():
    ratios = SplitRatios(train=1.0, validation=0.0, test=0.0)
    labels = {derive_label_for_id(f"id_{i}", 11, ratios) for i in range(500)}
    assert labels == {SplitLabel.TRAIN}


def test_derived_labels_are_deterministic_and_follow_ratios():
    ratios = SplitRatios()
    first = [derive_label_for_id(f"rec_{i}", 5, ratios) for i in range(5000)]
    second = [derive_label_for_id(f"rec_{i}", 5, ratios) for i in range(5000)]
    assert first == second
    train_share = first.count(SplitLabel.TRAIN) / len(first)
    assert 0.75 < train_share < 0.85


def test_seed_changes_some_assignments():
    ratios = SplitRatios(train=0.5, validation=0.25, test=0.25)
    a = [derive_label_for_id(f"rec_{i}", 1, ratios) for i in range(200)]
    b = [derive_label_for_id(f"rec_{i}", 2, ratios) for i in range(200)]
    assert sum(x != y for x, y in zip(a, b)) > 0


def test_ratios_close():
    assert ratios_close(SplitRatios(), SplitRatios(0.8, 0.1, 0.1))
    assert not ratios_close(SplitRatios(), SplitRatios(0.7, 0.2, 0.1))


def test_payload_requires_prefix():
    with pytest.raises(SplitStoreError, match="missing expected prefix"):
        decode_payload(bytes([0x00, 0x01]))
    assert decode_payload(encode_payload(b"abc")) == b"abc"
    assert encode_payload(b"x")[0] == PAYLOAD_PREFIX


def test_decode_label_cases():
    assert decode_label(b"0") is SplitLabel.TRAIN
    assert decode_label(b"1") is SplitLabel.VALIDATION
    assert decode_label(b"2") is SplitLabel.TEST
    with pytest.raises(SplitStoreError, match="invalid split label"):
        decode_label(b"x")
    with pytest.raises(SplitStoreError):
        decode_label(b"")


def test_decoders_cover_tombstone_and_version_mismatch():
    assert decode_epoch_meta(b"") is None
    assert decode_epoch_meta(bytes([EPOCH_RECORD_TOMBSTONE])) is None
    assert decode_epoch_hashes(b"") is None
    assert decode_epoch_hashes(bytes([EPOCH_RECORD_TOMBSTONE])) is None
    assert decode_sampler_state(b"") is None
    assert encode_epoch_meta(None) == bytes([EPOCH_RECORD_TOMBSTONE])

    with pytest.raises(SplitStoreError, match="version mismatch"):
        decode_epoch_meta(bytes([(EPOCH_META_RECORD_VERSION + 1) & 0xFF, 1]))
    with pytest.raises(SplitStoreError, match="version mismatch"):
        decode_epoch_hashes(bytes([(EPOCH_HASH_RECORD_VERSION + 1) & 0xFF, 1]))
    with pytest.raises(SplitStoreError, match="version mismatch"):
        decode_sampler_state(bytes([(SAMPLER_STATE_RECORD_VERSION + 1) & 0xFF, 1]))


def test_decoders_reject_corrupt_payloads():
    with pytest.raises(SplitStoreError, match="corrupt epoch meta record"):
        decode_epoch_meta(bytes([EPOCH_META_RECORD_VERSION, PAYLOAD_PREFIX, 0xFF]))
    with pytest.raises(SplitStoreError, match="corrupt epoch hashes record"):
        decode_epoch_hashes(bytes([EPOCH_HASH_RECORD_VERSION, PAYLOAD_PREFIX, 0xFF]))
    with pytest.raises(SplitStoreError, match="corrupt sampler state record"):
        decode_sampler_state(bytes([SAMPLER_STATE_RECORD_VERSION, PAYLOAD_PREFIX, 0xFF]))


def test_encode_decode_roundtrips():
    meta = PersistedSplitMeta(epoch=4, offset=9, hashes_checksum=21)
    assert decode_epoch_meta(encode_epoch_meta(meta)) == meta

    hashes = PersistedSplitHashes(checksum=7, hashes=[1, 2, 3])
    decoded = decode_epoch_hashes(encode_epoch_hashes(hashes))
    assert decoded.checksum == 7
    assert decoded.hashes == [1, 2, 3]

    state = _state()
    decoded_state = decode_sampler_state(encode_sampler_state(state))
    assert decoded_state == state
    assert decoded_state.source_record_cursors == [("s", 2)]
    assert decoded_state.source_stream_cursors == [("s", 7)]


def test_sampler_state_roundtrip_with_unicode_source_ids():
    state = _state("sourcé::ünit")
    assert decode_sampler_state(encode_sampler_state(state)) == state


def test_deterministic_store_trait_methods():
    ratios = SplitRatios()
    store = DeterministicSplitStore(ratios, 999)
    assert store.ratios.train == ratios.train

    record_id = "source::record"
    derived = store.label_for(record_id)
    assert derived == derive_label_for_id(record_id, 999, ratios)
    store.upsert(record_id, SplitLabel.VALIDATION)
    assert store.label_for(record_id) is SplitLabel.VALIDATION
    assert store.ensure(record_id) == derived

    store.store_epoch_meta({SplitLabel.TEST: PersistedSplitMeta(epoch=1, offset=2, hashes_checksum=3)})
    assert store.load_epoch_meta()[SplitLabel.TEST].offset == 2
    store.store_epoch_meta({SplitLabel.TRAIN: PersistedSplitMeta(epoch=5, offset=6, hashes_checksum=7)})
    assert set(store.load_epoch_meta()) == {SplitLabel.TRAIN}

    assert store.load_epoch_hashes(SplitLabel.TRAIN) is None
    store.store_epoch_hashes(SplitLabel.TRAIN, PersistedSplitHashes(checksum=11, hashes=[4, 5]))
    assert store.load_epoch_hashes(SplitLabel.TRAIN).checksum == 11

    assert store.load_sampler_state() is None
    state = _state("s1")
    store.store_sampler_state(state)
    assert store.load_sampler_state().source_epoch == state.source_epoch


def test_deterministic_store_returns_independent_copies():
    store = DeterministicSplitStore(SplitRatios(), 3)
    hashes = PersistedSplitHashes(checksum=1, hashes=[1, 2])
    store.store_epoch_hashes(SplitLabel.VALIDATION, hashes)
    hashes.hashes.append(3)
    loaded = store.load_epoch_hashes(SplitLabel.VALIDATION)
    loaded.hashes.append(9)
    assert store.load_epoch_hashes(SplitLabel.VALIDATION).hashes == [1, 2]