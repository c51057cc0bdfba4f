"""SQLAlchemy models for the persistence layer (users, submissions, analyses)."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase


def _now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Classe de base pour tous les modèles SQLAlchemy."""

    metadata = MetaData()


class UserORM(Base):
    """Modèle ORM pour les comptes utilisateurs."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)


class SubmissionORM(Base):
    """Modèle ORM pour les soumissions de contenu."""

    __tablename__ = "submissions"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    fingerprint = Column(String(64), nullable=False)
    status = Column(String(50), nullable=False, default="pending")
    attempts = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        Index("idx_submissions_user_id", "user_id"),
        Index("idx_submissions_status", "status"),
        Index("idx_submissions_created_at", "created_at"),
        Index("idx_submissions_fingerprint", "fingerprint"),
    )


class AnalysisORM(Base):
    """Modèle ORM pour les résultats d'analyse (au plus un par soumission)."""

    __tablename__ = "analyses"

    id = Column(String(36), primary_key=True)
    submission_id = Column(
        String(36),
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    sentiment = Column(String(50), nullable=False)
    sentiment_score = Column(Float, nullable=False)
    topics = Column(JSON, nullable=False, default=list)
    summary = Column(Text, nullable=False, default="")
    raw_response = Column(JSON, nullable=False, default=dict)
    processing_time_ms = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (Index("idx_analyses_submission_id", "submission_id"),)
