"""
Module d'authentification et de gestion des tokens.

Ce module fournit les fonctions pour le hachage des mots de passe, la création et validation des
tokens JWT, et la validation des identifiants à l'inscription.
"""

import re
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from jwt import InvalidTokenError
from passlib.context import CryptContext
from pydantic import BaseModel

MIN_PASSWORD_LEN = 8
EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}$")

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class TokenData(BaseModel):
    """Données contenues dans un token JWT."""

    sub: str
    email: str


def configure_password_hashing(rounds: int) -> None:
    """Ajuste le coût PBKDF2 (tests: valeur basse; prod: défaut passlib ou plus)."""
    pwd_context.update(pbkdf2_sha256__rounds=rounds)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def validate_email(email: str) -> None:
    """Lève ValueError si l'email est vide ou mal formé."""
    if not email:
        raise ValueError("email is required")
    if not EMAIL_RE.match(email):
        raise ValueError("invalid email format")


def validate_password(password: str) -> None:
    """Lève ValueError si le mot de passe est vide ou trop court."""
    if not password:
        raise ValueError("password is required")
    if len(password) < MIN_PASSWORD_LEN:
        raise ValueError(f"password must be at least {MIN_PASSWORD_LEN} characters long")


def hash_password(p: str) -> str:
    """Hache un mot de passe en utilisant PBKDF2."""
    return pwd_context.hash(p)


def verify_password(p: str, h: str) -> bool:
    """Vérifie un mot de passe contre son hash."""
    if not h:
        return False
    return pwd_context.verify(p, h)


def create_access_token(
    secret: str, alg: str, expires_min: int, payload: dict[str, Any]
) -> tuple[str, datetime]:
    """Crée un token JWT d'accès; retourne (token, date d'expiration)."""
    to_encode = payload.copy()
    expire = datetime.now(UTC) + timedelta(minutes=expires_min)
    to_encode.update({"exp": expire, "iat": datetime.now(UTC)})
    return jwt.encode(to_encode, secret, algorithm=alg), expire


def decode_token(token: str, secret: str, alg: str) -> TokenData | None:
    """Décode et valide un token JWT."""
    try:
        data = jwt.decode(token, secret, algorithms=[alg])
        return TokenData(sub=str(data["sub"]), email=str(data.get("email", "")))
    except (InvalidTokenError, KeyError):
        return None
