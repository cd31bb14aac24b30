"""
Configuration de la conversion et du logging

Contenu
- `ConversionOptions`: options reconnues par le convertisseur (valeurs par défaut typées).
- Lecture des variables d'environnement `FRCORE_*`.
- `configure_logging()`: configuration racine du logging (format identique pour
    l'outil CLI et les tests).
"""
import logging
import os
from dataclasses import dataclass, asdict, fields
from typing import Any, Dict, Mapping, Optional

from frcore_bridge.errors import ConversionError

BUNDLE_TYPES = ("message", "transaction", "collection")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Alias camelCase acceptés dans les dictionnaires d'options (appelants JSON)
_OPTION_ALIASES = {
    "frenchMode": "french_mode",
    "generateMessageHeader": "generate_message_header",
    "validateFRCore": "validate_fr_core",
    "strictCompliance": "strict_compliance",
    "bundleType": "bundle_type",
}


def env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default) in ("1", "true", "True")


@dataclass(frozen=True)
class ConversionOptions:
    """Options d'une conversion.

    - french_mode: active la passe d'enrichissement par segments Z (ADT).
    - generate_message_header: produit un Bundle de type "message" avec MessageHeader.
    - validate_fr_core / strict_compliance: indicateurs consultatifs, exploités par
      l'appelant (rapport de validation, code retour du CLI).
    - bundle_type: force le type du Bundle ("message", "transaction", "collection").
    """
    french_mode: bool = True
    generate_message_header: bool = True
    validate_fr_core: bool = False
    strict_compliance: bool = False
    bundle_type: Optional[str] = None

    def __post_init__(self):
        if self.bundle_type is not None and self.bundle_type not in BUNDLE_TYPES:
            raise ConversionError(
                f"Type de Bundle non supporté: {self.bundle_type} (attendu: {', '.join(BUNDLE_TYPES)})"
            )

    @property
    def resolved_bundle_type(self) -> str:
        """Type effectif: la surcharge explicite l'emporte, sinon message/collection."""
        if self.bundle_type:
            return self.bundle_type
        return "message" if self.generate_message_header else "collection"

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ConversionOptions":
        """Construit les options depuis un dictionnaire (clés snake_case ou camelCase).

        Les clés inconnues sont ignorées.
        """
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            name = _OPTION_ALIASES.get(key, key)
            if name in known:
                values[name] = value
        return cls(**values)

    @classmethod
    def from_env(cls) -> "ConversionOptions":
        return cls(
            french_mode=env_flag("FRCORE_FRENCH_MODE", "1"),
            strict_compliance=env_flag("FRCORE_STRICT"),
            validate_fr_core=env_flag("FRCORE_STRICT"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def terminology_db_url() -> str:
    """URL SQLAlchemy de la base de terminologies (SQLite mémoire par défaut)."""
    return os.getenv("FRCORE_TERMINOLOGY_DB", "sqlite://")


def configure_logging(level: Optional[str] = None) -> None:
    """Configure le logging racine (niveau via FRCORE_LOG_LEVEL, INFO par défaut)."""
    level_name = (level or os.getenv("FRCORE_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
    )
