"""Dépôt utilisateurs adossé à SQLAlchemy (email unique)."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import UserORM


def _to_dict(row: UserORM) -> dict[str, Any]:
    return {
        "id": row.id,
        "email": row.email,
        "password_hash": row.password_hash,
        "created_at": row.created_at,
    }


class UserRepo:
    """Dépôt utilisateurs (lecture par email ou id, création)."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_by_email(self, email: str) -> dict[str, Any] | None:
        """Recherche un utilisateur par email."""
        stmt = select(UserORM).where(UserORM.email == email)
        row = self._session.execute(stmt).scalars().first()
        return _to_dict(row) if row else None

    def get(self, user_id: str) -> dict[str, Any] | None:
        row = self._session.get(UserORM, user_id)
        return _to_dict(row) if row else None

    def save(self, user: dict[str, Any]) -> dict[str, Any]:
        """Insère un utilisateur. Lève IntegrityError si l'email existe déjà."""
        row = UserORM(id=user["id"], email=user["email"], password_hash=user["password_hash"])
        self._session.add(row)
        self._session.flush()
        return _to_dict(row)
