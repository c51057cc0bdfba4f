"""Dépendances partagées pour les routes de l'API.

But du module
-------------
- Fournir aux endpoints le conteneur attaché à l'application (`app.state.container`), ce qui
  permet aux tests d'injecter un conteneur dédié sans toucher au singleton global.
- Extraire et valider l'utilisateur courant à partir du jeton bearer.
"""

from typing import Any

from fastapi import Depends, Header, Request

from content_analyzer.api.errors import unauthorized
from content_analyzer.core.container import Container
from content_analyzer.domain.auth import decode_token
from content_analyzer.infra.repo.db import session_scope
from content_analyzer.infra.repo.user_repo import UserRepo


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_current_user(
    authorization: str | None = Header(None),
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    """Extrait et valide l'utilisateur courant à partir du token d'autorisation."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise unauthorized("Authorization header required")
    token = authorization.split(" ", 1)[1].strip()
    data = decode_token(token, container.settings.JWT_SECRET, container.settings.JWT_ALG)
    if not data:
        raise unauthorized("Invalid or expired token")
    with session_scope(container.session_factory) as session:
        user = UserRepo(session).get(data.sub)
    if not user:
        raise unauthorized("User not found")
    return user
