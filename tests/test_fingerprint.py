"""Tests de l'empreinte de contenu (clé de cache)."""

from content_analyzer.domain.fingerprint import CACHE_KEY_PREFIX, cache_key, fingerprint


def test_fingerprint_is_deterministic_and_hex():
    fp = fingerprint("I love this product")
    assert fp == fingerprint("I love this product")
    assert len(fp) == 64
    int(fp, 16)


def test_fingerprint_depends_only_on_content():
    assert fingerprint("I love this product") != fingerprint("I love this product!")
    # Octets UTF-8: une différence de normalisation change l'empreinte
    assert fingerprint("caf\u00e9") != fingerprint("cafe\u0301")


def test_known_sha256_vector():
    assert fingerprint("") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


def test_cache_key_prefix():
    fp = fingerprint("x")
    assert cache_key(fp) == f"{CACHE_KEY_PREFIX}{fp}"
    assert cache_key(fp).startswith("analysis:v1:")
