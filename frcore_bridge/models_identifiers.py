"""
Modèle des identifiants HL7 (CX) et de leur classification
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class IdentifierKind(str, Enum):
    INS = "INS"          # Identifiant national de santé (NIR/NIA)
    IPP = "IPP"          # Identifiant patient interne à l'établissement
    EXPLICIT = "EXPLICIT"  # OID explicite fourni par l'émetteur
    GENERIC = "GENERIC"  # Type déclaré sans autorité exploitable
    TEMP = "TEMP"        # Identifiant temporaire synthétisé


@dataclass(frozen=True)
class CXIdentifier:
    """Composants utiles d'un CX: ID^^^Autorité&OID&ISO^Type."""
    value: str
    type_code: str = ""
    authority_name: str = ""
    authority_oid: str = ""

    @property
    def has_value(self) -> bool:
        return bool(self.value)


@dataclass(frozen=True)
class Classification:
    """Résultat de classification: système, type et usage FHIR."""
    kind: IdentifierKind
    system: Optional[str]
    type_system: Optional[str]
    type_code: Optional[str]
    type_display: Optional[str]
    use: Optional[str]
