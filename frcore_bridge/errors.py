"""
Erreurs et avertissements de conversion HL7 v2 -> FHIR FR Core

Contenu
- `ConversionError` et ses variantes typées (`FormatError`, `MissingHeaderError`,
    `UnsupportedTypeError`, `MappingError`). Chaque erreur porte un discriminant
    `kind` et, quand ils sont connus, le type de message, l'évènement et le segment.
- `ConversionWarning`: anomalie non bloquante (segment, index de champ, raison)
    collectée pendant le parsing ou le mapping et renvoyée avec le résultat.

Notes
- Les erreurs structurelles (message vide, MSH absent, évènement illisible) sont
    toujours fatales; tout le reste devient un avertissement.
"""
from dataclasses import dataclass, asdict
from typing import Dict, Optional


class ConversionError(Exception):
    """Erreur fatale de conversion (aucun Bundle n'est produit)."""

    kind = "ConversionError"

    def __init__(
        self,
        message: str,
        *,
        message_type: Optional[str] = None,
        event_type: Optional[str] = None,
        segment: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.message_type = message_type
        self.event_type = event_type
        self.segment = segment

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "kind": self.kind,
            "message": self.message,
            "message_type": self.message_type,
            "event_type": self.event_type,
            "segment": self.segment,
        }

    def __str__(self) -> str:
        context = []
        if self.message_type:
            event = f"^{self.event_type}" if self.event_type else ""
            context.append(f"{self.message_type}{event}")
        if self.segment:
            context.append(f"segment {self.segment}")
        if context:
            return f"{self.message} ({', '.join(context)})"
        return self.message


class FormatError(ConversionError):
    """Texte vide, sans segment exploitable ou ne commençant pas par MSH."""

    kind = "FormatError"


class MissingHeaderError(ConversionError):
    """En-tête MSH absent ou évènement déclencheur (MSH-9.2) absent/illisible."""

    kind = "MissingHeaderError"


class UnsupportedTypeError(ConversionError):
    """Aucun handler enregistré pour le type de message."""

    kind = "UnsupportedTypeError"


class MappingError(ConversionError):
    """Incohérence lors de l'assemblage du Bundle (fullUrl dupliqué, rôle inconnu...)."""

    kind = "MappingError"


@dataclass(frozen=True)
class ConversionWarning:
    """Anomalie non bloquante: (segment, index du champ, raison)."""
    segment: str
    field_index: int
    reason: str

    def to_dict(self) -> Dict:
        return asdict(self)

    def __str__(self) -> str:
        return f"{self.segment}-{self.field_index}: {self.reason}"
