"""
Routes d'authentification pour l'API.

Ce module fournit les endpoints d'inscription, de connexion et de lecture du profil courant.
"""

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError

from content_analyzer.api.deps import get_container, get_current_user
from content_analyzer.api.errors import ErrorCodes, bad_request, conflict, unauthorized
from content_analyzer.api.schemas import (
    AuthResponse,
    LoginRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from content_analyzer.core.container import Container
from content_analyzer.core.http_constants import HTTP_CREATED
from content_analyzer.domain.auth import (
    create_access_token,
    hash_password,
    normalize_email,
    validate_email,
    validate_password,
    verify_password,
)
from content_analyzer.domain.entities import new_id
from content_analyzer.infra.repo.db import session_scope
from content_analyzer.infra.repo.user_repo import UserRepo

router = APIRouter(prefix="/v1/auth", tags=["auth"])


def _auth_response(container: Container, user: dict[str, Any]) -> AuthResponse:
    settings = container.settings
    token, expires_at = create_access_token(
        secret=settings.JWT_SECRET,
        alg=settings.JWT_ALG,
        expires_min=settings.JWT_EXPIRES_MIN,
        payload={"sub": user["id"], "email": user["email"]},
    )
    return AuthResponse(
        user=UserResponse(id=user["id"], email=user["email"], created_at=user.get("created_at")),
        token=TokenResponse(access_token=token, expires_at=expires_at),
    )


@router.post("/register", status_code=HTTP_CREATED, response_model=AuthResponse)
def register(p: RegisterRequest, container: Container = Depends(get_container)):
    """Inscrit un nouvel utilisateur et retourne un token d'accès."""
    email = normalize_email(p.email)
    try:
        validate_email(email)
        validate_password(p.password)
    except ValueError as exc:
        raise bad_request(str(exc)) from exc

    try:
        with session_scope(container.session_factory) as session:
            repo = UserRepo(session)
            if repo.get_by_email(email):
                raise conflict(ErrorCodes.EMAIL_EXISTS, "Email already exists")
            user = repo.save(
                {"id": new_id(), "email": email, "password_hash": hash_password(p.password)}
            )
    except IntegrityError as exc:
        # Course entre deux inscriptions concurrentes sur le même email
        raise conflict(ErrorCodes.EMAIL_EXISTS, "Email already exists") from exc
    return _auth_response(container, user)


@router.post("/login", response_model=AuthResponse)
def login(p: LoginRequest, container: Container = Depends(get_container)):
    """Authentifie un utilisateur et retourne un token d'accès."""
    email = normalize_email(p.email)
    with session_scope(container.session_factory) as session:
        user = UserRepo(session).get_by_email(email)
    if not user or not verify_password(p.password, user.get("password_hash", "")):
        raise unauthorized("Invalid email or password")
    return _auth_response(container, user)


@router.get("/me", response_model=UserResponse)
def me(user: dict[str, Any] = Depends(get_current_user)):
    """Retourne l'utilisateur associé au token."""
    return UserResponse(id=user["id"], email=user["email"], created_at=user.get("created_at"))
