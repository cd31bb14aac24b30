"""
Accès à la base des vocabulaires (terminologies françaises)

Contenu
- Création du moteur SQLModel (SQLite mémoire par défaut, URL via `FRCORE_TERMINOLOGY_DB`).
- `init_db`: création des tables (idempotent).

Notes
- En mémoire, toutes les connexions doivent partager la même base: `StaticPool`.
"""
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

# Import des modèles pour enregistrer les tables dans SQLModel.metadata
from frcore_bridge.models_vocabulary import VocabularySystem, VocabularyValue, VocabularyMapping  # noqa: F401
from frcore_bridge.config import terminology_db_url


def create_terminology_engine(url: Optional[str] = None) -> Engine:
    """Moteur SQLModel pour la base de vocabulaires."""
    url = url or terminology_db_url()
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, echo=False, pool_pre_ping=True)


def init_db(engine: Engine) -> None:
    """Crée les tables si elles n'existent pas (idempotent)."""
    SQLModel.metadata.create_all(engine)
