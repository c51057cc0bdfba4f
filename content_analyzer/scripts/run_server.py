"""
Script de lancement du serveur HTTP (uvicorn).

Par défaut en local: fournisseur d'analyse déterministe et workers en threads, sans clé d'API ni
Redis. Toute variable déjà définie dans l'environnement est conservée.
"""

import os

# Ensure local-friendly defaults BEFORE importing app/modules
os.environ.setdefault("ANALYSIS_PROVIDER", "fake")
os.environ.setdefault("WORKER_MODE", "threads")

import uvicorn  # noqa: E402

from content_analyzer.app.main import app  # noqa: E402


def main():
    """Point d'entrée: lance l'application FastAPI sur APP_HOST:APP_PORT."""
    settings = app.state.container.settings
    port = int(os.environ.get("PORT", settings.APP_PORT))
    uvicorn.run(app, host=settings.APP_HOST, port=port, reload=False)


if __name__ == "__main__":
    main()
