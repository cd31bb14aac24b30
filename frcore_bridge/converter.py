"""
Point d'entrée de la conversion HL7 v2 -> Bundle FHIR FR Core

Contenu
- `convert(raw, options, terminology)`: parse, route, assemble et (optionnellement)
    contrôle le Bundle.
- `ConversionResult`: Bundle, avertissements non bloquants, type/évènement, rapport
    de contrôle FR Core.

Notes
- Chaque appel crée son propre contexte: conversions concurrentes sans verrou.
- Les erreurs structurelles remontent en `ConversionError` (aucun résultat partiel).
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from frcore_bridge.config import ConversionOptions
from frcore_bridge.errors import ConversionError, ConversionWarning
from frcore_bridge.services.bundle import ConversionContext
from frcore_bridge.services.frcore_validation import ValidationResult, validate_bundle
from frcore_bridge.services.hl7_parser import parse
from frcore_bridge.services.message_router import route
from frcore_bridge.services.terminology import TerminologyLookup, get_default_terminology
from frcore_bridge.utils.hl7_detector import detect_type

logger = logging.getLogger(__name__)


@dataclass
class ConversionResult:
    bundle: Dict[str, Any]
    message_type: str
    event_type: str
    warnings: List[ConversionWarning] = field(default_factory=list)
    validation: Optional[ValidationResult] = None

    @property
    def is_compliant(self) -> bool:
        """Vrai si aucun contrôle n'a été demandé ou si le contrôle n'a relevé aucune erreur."""
        return self.validation is None or self.validation.is_valid

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message_type": self.message_type,
            "event_type": self.event_type,
            "bundle": self.bundle,
            "warnings": [warning.to_dict() for warning in self.warnings],
            "validation": self.validation.to_dict() if self.validation else None,
        }


def convert(
    raw: str,
    options: Optional[Union[ConversionOptions, Mapping[str, Any]]] = None,
    terminology: Optional[TerminologyLookup] = None,
) -> ConversionResult:
    """
    Convertit un message HL7 v2.x en Bundle FHIR FR Core.

    Args:
        raw: Texte du message (segments séparés par CR, LF, CRLF ou LFCR)
        options: ConversionOptions ou dictionnaire d'options (camelCase accepté)
        terminology: Lookup des terminologies (instance partagée par défaut)

    Returns:
        ConversionResult

    Raises:
        FormatError, MissingHeaderError, UnsupportedTypeError, MappingError
    """
    if not isinstance(options, ConversionOptions):
        options = ConversionOptions.from_dict(options)
    if terminology is None:
        terminology = get_default_terminology()

    parsed = parse(raw)
    info = detect_type(parsed.header)
    context = ConversionContext(info.message_type, info.event_type, options, terminology)
    try:
        bundle = route(parsed, options, context)
    except ConversionError as exc:
        exc.message_type = exc.message_type or info.message_type
        exc.event_type = exc.event_type or info.event_type
        raise

    document = bundle.to_dict()
    validation = validate_bundle(document) if options.validate_fr_core or options.strict_compliance else None
    if validation is not None and not validation.is_valid:
        logger.warning(f"{info.code}: {len(validation.errors)} écart(s) FR Core")

    logger.info(f"{info.code} converti: {len(bundle)} ressources, {len(context.warnings)} avertissement(s)")
    return ConversionResult(
        bundle=document,
        message_type=info.message_type,
        event_type=info.event_type,
        warnings=list(context.warnings),
        validation=validation,
    )
