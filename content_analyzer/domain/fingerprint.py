"""Empreinte de contenu utilisée comme clé de cache et de déduplication."""

from __future__ import annotations

import hashlib

CACHE_KEY_PREFIX = "analysis:v1:"


def fingerprint(text: str) -> str:
    """Retourne le SHA-256 hexadécimal des octets UTF-8 du texte.

    Ne dépend que du contenu: deux utilisateurs soumettant le même texte partagent la même clé.
    """
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def cache_key(fp: str) -> str:
    """Compose la clé de cache pour une empreinte."""
    return f"{CACHE_KEY_PREFIX}{fp}"
