"""
Classification des identifiants HL7 (CX / XCN / HD) en identifiants FHIR FR Core

Contenu
- `parse_cx_identifier`: extraction (valeur, type, autorité, OID) d'une répétition CX.
- `classify_identifier`: règle de décision INS > IPP > OID explicite > générique.
- `resolve_patient_identifiers`: liste dédoublonnée + synthèses (temporaire, IPP dérivé de l'INS).
- Identifiants praticien (RPPS/ADELI), venue (VN) et organisation (FINESS).

Notes
- OID canonique des identifiants internes (IPP, VN): 1.2.250.1.71.4.2.7.
- L'IPP dérivé d'un INS (premiers chiffres + suffixe horaire) n'est pas garanti unique.
"""
import logging
import re
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from frcore_bridge.models_hl7 import FieldValue
from frcore_bridge.models_identifiers import Classification, CXIdentifier, IdentifierKind
from frcore_bridge.services.fhir_fr import (
    CS_FR_V2_0203,
    CS_V2_0203,
    OID_INS_C,
    OID_INS_NIA,
    OID_INS_NIA_TEST,
    OID_INS_NIR,
    OID_INS_NIR_TEST,
    SYSTEM_INTERNAL,
    SYSTEM_ORGANIZATION,
    SYSTEM_PRACTITIONER,
)
from frcore_bridge.utils.hl7_fields import component_text, repetitions

logger = logging.getLogger(__name__)

# Type FR Core -> OID national
NATIONAL_TYPE_OIDS = {
    "INS-NIR": OID_INS_NIR,
    "INS-NIA": OID_INS_NIA,
    "INS-NIR-TEST": OID_INS_NIR_TEST,
    "INS-NIA-TEST": OID_INS_NIA_TEST,
    "INS-C": OID_INS_C,
}
NATIONAL_TYPE_DISPLAYS = {
    "INS-NIR": "NIR définitif",
    "INS-NIA": "NIA",
    "INS-NIR-TEST": "NIR de test",
    "INS-NIA-TEST": "NIA de test",
    "INS-C": "INS calculé",
}
# Marqueurs historiques ramenés au type FR Core
NATIONAL_MARKER_ALIASES = {"INS": "INS-NIR", "INS-A": "INS-NIR"}
KNOWN_NATIONAL_OIDS = {oid: code for code, oid in NATIONAL_TYPE_OIDS.items()}

INTERNAL_TYPE_CODES = {"PI", "NH", ""}
DEFAULT_INTERNAL_AUTHORITIES = frozenset({"IPP"})
INS_LIKE_TOKENS = {"INS", "NIR", "NIA", "ASIP", "ANS", "INSI"}

_NIR_PATTERN = re.compile(r"^\d{6}[\dAB]\d{8}$")
_OID_PATTERN = re.compile(r"^\d+(\.\d+)+$")


def _bare_oid(value: str) -> str:
    return value[len("urn:oid:"):] if value.startswith("urn:oid:") else value


def _authority_tokens(authority: str) -> str:
    """"ASIP-SANTE INS/NIR" -> "-ASIP-SANTE-INS-NIR-" (recherche de marqueurs par mot)."""
    return "-" + "-".join(token for token in re.split(r"[^A-Z0-9]+", authority.upper()) if token) + "-"


def parse_cx_identifier(value: FieldValue) -> CXIdentifier:
    """
    Parse une répétition CX (ID^^^Autorité&OID&ISO^Type).

    Args:
        value: Répétition CX parsée

    Returns:
        CXIdentifier (valeur, type CX-5, nom CX-4.1 et OID CX-4.2 de l'autorité)
    """
    return CXIdentifier(
        value=component_text(value, 0),
        type_code=component_text(value, 4),
        authority_name=component_text(value, 3, 0),
        authority_oid=_bare_oid(component_text(value, 3, 1)),
    )


def cx_from_fhir_identifier(identifier: Dict) -> CXIdentifier:
    """Reconstitue un CX depuis un Identifier FHIR déjà produit (re-classification)."""
    codings = (identifier.get("type") or {}).get("coding") or [{}]
    return CXIdentifier(
        value=identifier.get("value", ""),
        type_code=codings[0].get("code", ""),
        authority_name=(identifier.get("assigner") or {}).get("display", ""),
        authority_oid=_bare_oid(identifier.get("system") or ""),
    )


def _is_ins_like(cx: CXIdentifier) -> bool:
    tokens = set(_authority_tokens(cx.authority_name).strip("-").split("-"))
    if tokens & INS_LIKE_TOKENS:
        return True
    return cx.authority_oid.startswith("1.2.250.1.213.1.4")


def national_type(cx: CXIdentifier) -> Optional[str]:
    """Type FR Core national (INS-NIR, INS-NIA...) si le CX porte un marqueur INS."""
    type_code = cx.type_code.upper()
    if type_code in NATIONAL_TYPE_OIDS:
        return type_code
    if type_code in NATIONAL_MARKER_ALIASES:
        return NATIONAL_MARKER_ALIASES[type_code]

    authority = _authority_tokens(cx.authority_name)
    for marker in sorted(NATIONAL_TYPE_OIDS, key=len, reverse=True):
        if f"-{marker}-" in authority:
            return marker
    for marker, code in NATIONAL_MARKER_ALIASES.items():
        if f"-{marker}-" in authority:
            return code

    if _NIR_PATTERN.match(cx.value) and _is_ins_like(cx):
        return "INS-NIR"
    return None


def classify_identifier(
    cx: CXIdentifier,
    internal_authorities: Iterable[str] = DEFAULT_INTERNAL_AUTHORITIES,
) -> Classification:
    """
    Classe un identifiant patient.

    Ordre de décision:
    1. marqueur INS (type ou autorité) ou 15 chiffres sous une autorité de type INS
       -> identifiant national, OID national fixe;
    2. type PI/NH/vide ou autorité interne par défaut -> IPP, OID interne;
    3. OID explicite -> repris tel quel (type re-étiqueté si OID national connu);
    4. sinon identifiant générique du type déclaré.
    """
    code = national_type(cx)
    if code:
        return Classification(
            kind=IdentifierKind.INS,
            system=f"urn:oid:{NATIONAL_TYPE_OIDS[code]}",
            type_system=CS_FR_V2_0203,
            type_code=code,
            type_display=NATIONAL_TYPE_DISPLAYS[code],
            use="official",
        )

    type_code = cx.type_code.upper()
    authorities = {name.upper() for name in internal_authorities}
    if type_code in INTERNAL_TYPE_CODES or cx.authority_name.upper() in authorities:
        return Classification(
            kind=IdentifierKind.IPP,
            system=SYSTEM_INTERNAL,
            type_system=CS_V2_0203,
            type_code="PI",
            type_display="Patient internal identifier",
            use="usual",
        )

    if cx.authority_oid:
        oid = cx.authority_oid
        system = oid if ("://" in oid or oid.startswith("urn:")) else f"urn:oid:{oid}"
        if oid in KNOWN_NATIONAL_OIDS:
            national = KNOWN_NATIONAL_OIDS[oid]
            return Classification(
                kind=IdentifierKind.INS,
                system=system,
                type_system=CS_FR_V2_0203,
                type_code=national,
                type_display=NATIONAL_TYPE_DISPLAYS[national],
                use="official",
            )
        return Classification(
            kind=IdentifierKind.EXPLICIT,
            system=system,
            type_system=CS_V2_0203,
            type_code=type_code,
            type_display=None,
            use=None,
        )

    return Classification(
        kind=IdentifierKind.GENERIC,
        system=None,
        type_system=CS_V2_0203,
        type_code=type_code,
        type_display=None,
        use=None,
    )


def to_fhir_identifier(
    value: str,
    classification: Classification,
    assigner: Optional[str] = None,
    use: Optional[str] = None,
) -> Dict:
    identifier: Dict = {}
    if use or classification.use:
        identifier["use"] = use or classification.use
    if classification.type_code:
        coding = {"system": classification.type_system, "code": classification.type_code}
        if classification.type_display:
            coding["display"] = classification.type_display
        identifier["type"] = {"coding": [coding]}
    if classification.system:
        identifier["system"] = classification.system
    identifier["value"] = value
    if assigner:
        identifier["assigner"] = {"display": assigner}
    return identifier


def identifier_kind(identifier: Dict) -> IdentifierKind:
    """Re-classe un Identifier FHIR produit par ce module."""
    if identifier.get("use") == "temp":
        return IdentifierKind.TEMP
    return classify_identifier(cx_from_fhir_identifier(identifier)).kind


def _internal_classification() -> Classification:
    return classify_identifier(CXIdentifier(value="", type_code="PI"))


def synthesize_internal_identifier(national_value: str, now: Optional[datetime] = None) -> Dict:
    """IPP dérivé de l'INS: 8 premiers chiffres + HHMMSS (non garanti unique)."""
    now = now or datetime.now()
    digits = re.sub(r"\D", "", national_value)[:8]
    return to_fhir_identifier(f"{digits}{now.strftime('%H%M%S')}", _internal_classification())


def synthesize_temporary_identifier(now: Optional[datetime] = None) -> Dict:
    now = now or datetime.now()
    return to_fhir_identifier(f"TMP{now.strftime('%Y%m%d%H%M%S')}", _internal_classification(), use="temp")


def merge_identifiers(existing: List[Dict], new: List[Dict]) -> List[Dict]:
    """Fusionne deux listes d'Identifier FHIR, dédoublonnage par (system, value)."""
    result = []
    seen = set()
    for identifier in list(existing) + list(new):
        key = (identifier.get("system"), identifier.get("value"))
        if key in seen:
            continue
        seen.add(key)
        result.append(identifier)
    return result


def resolve_patient_identifiers(
    fields: Iterable[FieldValue],
    now: Optional[datetime] = None,
    warn: Optional[Callable[[str], None]] = None,
) -> List[Dict]:
    """
    Extrait et classe les identifiants patient d'un ou plusieurs champs CX répétés
    (PID-3, PID-2, PID-4).

    Args:
        fields: Champs CX (chaque champ peut être répété)
        now: Horodatage de référence pour les identifiants synthétisés
        warn: Callback d'avertissement (identifiants ignorés ou synthétisés)

    Returns:
        Liste d'Identifier FHIR dédoublonnée; jamais vide
    """
    identifiers: List[Dict] = []
    kinds: List[IdentifierKind] = []
    for field_value in fields:
        for repetition in repetitions(field_value):
            cx = parse_cx_identifier(repetition)
            if not cx.has_value:
                if warn:
                    warn("identifiant sans valeur ignoré")
                continue
            classification = classify_identifier(cx)
            identifiers.append(to_fhir_identifier(cx.value, classification, assigner=cx.authority_name or None))
            kinds.append(classification.kind)

    deduped = merge_identifiers([], identifiers)

    if not deduped:
        if warn:
            warn("aucun identifiant patient: identifiant temporaire synthétisé")
        return [synthesize_temporary_identifier(now)]

    kinds_present = {identifier_kind(identifier) for identifier in deduped}
    if IdentifierKind.INS in kinds_present and IdentifierKind.IPP not in kinds_present:
        national = next(i for i in deduped if identifier_kind(i) == IdentifierKind.INS)
        logger.info("INS sans IPP: synthèse d'un IPP dérivé")
        if warn:
            warn("INS sans IPP: IPP dérivé synthétisé")
        deduped.append(synthesize_internal_identifier(national["value"], now))
    return deduped


def has_national_identifier(identifiers: Iterable[Dict]) -> bool:
    return any(identifier_kind(identifier) == IdentifierKind.INS for identifier in identifiers)


# --- Praticiens (XCN), venues (CX) et organisations (HD / XON) ---

def classify_practitioner_identifier(
    value: str,
    id_type: str = "",
    authority: str = "",
) -> Optional[Dict]:
    """
    Identifiant praticien: RPPS (11 chiffres), ADELI (9 chiffres) ou identifiant interne.
    """
    if not value:
        return None
    id_type_u = id_type.upper()
    authority_u = authority.upper()
    if id_type_u == "RPPS" or "RPPS" in authority_u or (not id_type_u and re.fullmatch(r"\d{11}", value)):
        code, display = "RPPS", "N° RPPS"
    elif id_type_u == "ADELI" or "ADELI" in authority_u or (not id_type_u and re.fullmatch(r"\d{9}", value)):
        code, display = "ADELI", "N° ADELI"
    else:
        identifier = {
            "use": "usual",
            "type": {"coding": [{"system": CS_V2_0203, "code": id_type_u or "PRN"}]},
            "system": SYSTEM_INTERNAL,
            "value": value,
        }
        if authority:
            identifier["assigner"] = {"display": authority}
        return identifier
    return {
        "use": "official",
        "type": {"coding": [{"system": CS_FR_V2_0203, "code": code, "display": display}]},
        "system": SYSTEM_PRACTITIONER,
        "value": value,
    }


def build_visit_identifier(value: FieldValue) -> Optional[Dict]:
    """Numéro de venue (PV1-19) -> Identifier VN, OID interne."""
    cx = parse_cx_identifier(value)
    if not cx.has_value:
        return None
    identifier = {
        "use": "official",
        "type": {"coding": [{"system": CS_V2_0203, "code": "VN", "display": "Visit number"}]},
        "system": SYSTEM_INTERNAL,
        "value": cx.value,
    }
    if cx.authority_name:
        identifier["assigner"] = {"display": cx.authority_name}
    return identifier


def build_organization_identifier(code: str, universal_id: str = "") -> Optional[Dict]:
    """
    Identifiant d'organisation: FINESS (9 caractères) sous l'OID organisation,
    OID explicite si l'identifiant universel en est un, sinon code local.
    """
    if re.fullmatch(r"(\d{2}|2A|2B)\d{7}", universal_id or ""):
        return {
            "use": "official",
            "type": {"coding": [{"system": CS_FR_V2_0203, "code": "FINEG", "display": "FINESS d'entité géographique"}]},
            "system": SYSTEM_ORGANIZATION,
            "value": universal_id,
        }
    if universal_id and _OID_PATTERN.match(universal_id):
        return {"use": "official", "system": f"urn:oid:{universal_id}", "value": code or universal_id}
    if code:
        return {"use": "usual", "system": SYSTEM_ORGANIZATION, "value": code}
    return None
