# riskwiz/tests/test_kv.py
import hashlib

import pytest

from riskwiz.kv import RollingHasher, canonical_kv_hash, short_digest


def test_hash_is_sha256_hex():
    digest = canonical_kv_hash({"reanalysis": "v5.1"})
    assert len(digest) == len(hashlib.sha256().hexdigest())
    int(digest, 16)


def test_hash_ignores_insertion_order():
    a = canonical_kv_hash({"a": "1", "b": "2"}, label="dataset_versions")
    b = canonical_kv_hash({"b": "2", "a": "1"}, label="dataset_versions")
    assert a == b


def test_label_separates_domains():
    m = {"a": "1"}
    assert canonical_kv_hash(m, label="x") != canonical_kv_hash(m, label="y")


def test_typed_scalars_do_not_collide():
    assert canonical_kv_hash({"k": 1}) != canonical_kv_hash({"k": "1"})
    assert canonical_kv_hash({"k": True}) != canonical_kv_hash({"k": 1})


def test_hasher_takes_no_algorithm_choice():
    with pytest.raises(TypeError):
        RollingHasher(alg="blake2s")


def test_short_digest_length():
    assert len(short_digest({"a": "1"}, label="dataset_versions")) == 16
    with pytest.raises(ValueError):
        short_digest({"a": "1"}, label="dataset_versions", length=4)
