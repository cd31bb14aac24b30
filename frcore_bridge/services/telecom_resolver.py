"""
Extraction des coordonnées HL7 (XTN) vers ContactPoint FHIR

Formes rencontrées dans PID-13 / PID-14 / NK1-5:
- chaîne simple ("0601020304");
- liste de composants (NUMERO^USAGE^EQUIPEMENT^EMAIL^...);
- répétitions de composites, le numéro pouvant être en XTN-12 ou découpé
  indicatif (XTN-6) + numéro (XTN-7).
"""
import re
from typing import Dict, Iterable, List, Optional

from frcore_bridge.models_hl7 import FieldValue
from frcore_bridge.utils.hl7_fields import component_text, repetitions

# XTN-3 (type d'équipement) -> ContactPoint.system
SYSTEM_BY_EQUIPMENT = {
    "PH": "phone",
    "CP": "phone",
    "FX": "fax",
    "BP": "pager",
    "INTERNET": "email",
    "X.400": "email",
    "MD": "other",
    "TDD": "phone",
    "TTY": "phone",
    "SAT": "phone",
}

# XTN-2 (usage) -> ContactPoint.use
USE_BY_CODE = {
    "PRN": "home",
    "ORN": "home",
    "VHN": "home",
    "WPN": "work",
    "BPN": "work",
    "ASN": "temp",
    "EMR": "temp",
    "PRS": "mobile",
}

_MOBILE_PREFIXES = ("06", "07", "+336", "+337", "00336", "00337")


def normalize_phone(value: str) -> str:
    return re.sub(r"[\s.\-()/]", "", value)


def is_french_mobile(value: str) -> bool:
    return normalize_phone(value).startswith(_MOBILE_PREFIXES)


def _system_for(value: str, equipment: str) -> str:
    if "@" in value:
        return "email"
    if value.lower().startswith(("http://", "https://")):
        return "url"
    return SYSTEM_BY_EQUIPMENT.get(equipment.upper(), "phone")


def parse_xtn(value: FieldValue, default_use: Optional[str] = None) -> Optional[Dict]:
    """
    Parse une répétition XTN.

    Args:
        value: Répétition XTN parsée
        default_use: Usage si XTN-2 absent ou inconnu

    Returns:
        ContactPoint ou None si aucune valeur exploitable
    """
    number = component_text(value, 0)
    if not number:
        number = component_text(value, 11)
    if not number:
        number = component_text(value, 3)
    if not number:
        area, local = component_text(value, 5), component_text(value, 6)
        number = f"{area}{local}" if local else ""
    if not number:
        return None

    equipment = component_text(value, 2)
    system = _system_for(number, equipment)
    use = USE_BY_CODE.get(component_text(value, 1).upper(), default_use)
    if system == "phone" and (equipment.upper() == "CP" or is_french_mobile(number)):
        use = "mobile"
    if system == "email":
        # pas d'usage mobile pour un email
        use = use if use != "mobile" else default_use

    contact = {"system": system, "value": number}
    if use:
        contact["use"] = use
    return contact


def dedupe_telecoms(telecoms: Iterable[Dict]) -> List[Dict]:
    result = []
    seen = set()
    for contact in telecoms:
        key = (contact.get("system"), contact.get("use"), contact.get("value"))
        if key in seen:
            continue
        seen.add(key)
        result.append(contact)
    return result


def resolve_telecoms(value: FieldValue, default_use: Optional[str] = None) -> List[Dict]:
    """ContactPoint dédoublonnés (system, use, value) d'un champ XTN répété."""
    telecoms = []
    for repetition in repetitions(value):
        contact = parse_xtn(repetition, default_use)
        if contact:
            telecoms.append(contact)
    return dedupe_telecoms(telecoms)


def resolve_patient_telecoms(home: FieldValue, work: FieldValue) -> List[Dict]:
    """PID-13 (usage domicile par défaut) + PID-14 (usage professionnel par défaut)."""
    return dedupe_telecoms(resolve_telecoms(home, "home") + resolve_telecoms(work, "work"))
