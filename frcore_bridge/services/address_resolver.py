"""
Extraction des adresses HL7 (XAD) vers Address FHIR

XAD: RUE^COMPLEMENT^VILLE^ETAT^CODE POSTAL^PAYS^TYPE^AUTRE^CODE COMMUNE...

Notes
- Le code commune INSEE est parfois saisi entre parenthèses dans la ville
    ("STRASBOURG (67482)"); il est retiré du texte et porté par l'extension INSEE.
- Les adresses de type BDL/BR (lieu de naissance) sont renvoyées à part pour
    l'extension patient-birthPlace.
"""
import re
from typing import Dict, List, Optional, Tuple

from frcore_bridge.models_hl7 import FieldValue
from frcore_bridge.services.fhir_fr import EXT_BIRTH_PLACE, EXT_INSEE_CODE, extension
from frcore_bridge.utils.hl7_fields import component_text, repetitions

# XAD-7 -> (Address.use, Address.type)
ADDRESS_TYPE_MAP = {
    "H": ("home", "both"),
    "P": ("home", "physical"),
    "B": ("work", None),
    "O": ("work", None),
    "C": ("temp", None),
    "M": (None, "postal"),
    "BA": ("old", None),
}
BIRTH_PLACE_TYPES = {"BDL", "BR", "N"}

_INSEE_IN_CITY = re.compile(r"\s*\((\d[\dAB]\d{3})\)\s*")
_INSEE_CODE = re.compile(r"^\d[\dAB]\d{3}$")


def extract_insee_code(city: str) -> Tuple[str, Optional[str]]:
    """
    Sépare la ville du code INSEE éventuel.

    Returns:
        (ville nettoyée, code INSEE ou None)
    """
    match = _INSEE_IN_CITY.search(city or "")
    if not match:
        return city, None
    cleaned = (city[:match.start()] + " " + city[match.end():]).strip()
    return cleaned, match.group(1)


def parse_xad(value: FieldValue) -> Tuple[Optional[Dict], str]:
    """
    Parse une répétition XAD.

    Returns:
        (Address ou None si vide, code type XAD-7)
    """
    street = component_text(value, 0)
    other = component_text(value, 1)
    city, insee = extract_insee_code(component_text(value, 2))
    state = component_text(value, 3)
    postal_code = component_text(value, 4)
    country = component_text(value, 5)
    type_code = component_text(value, 6).upper()
    if not insee:
        county = component_text(value, 8)
        insee = county if _INSEE_CODE.match(county) else None

    lines = [line for line in (street, other) if line]
    if not (lines or city or postal_code or country or insee):
        return None, type_code

    address: Dict = {}
    use, kind = ADDRESS_TYPE_MAP.get(type_code, (None, None))
    if use:
        address["use"] = use
    if kind:
        address["type"] = kind
    if lines:
        address["line"] = lines
    if city:
        address["city"] = city
    if state:
        address["state"] = state
    if postal_code:
        address["postalCode"] = postal_code
    if country:
        address["country"] = country
    if insee:
        address["extension"] = [extension(EXT_INSEE_CODE, valueString=insee)]
    return address, type_code


def resolve_addresses(value: FieldValue) -> Tuple[List[Dict], Optional[Dict]]:
    """
    Adresses d'un champ XAD (simple ou répété).

    Returns:
        (adresses dédoublonnées, extension birthPlace ou None)
    """
    addresses: List[Dict] = []
    birth_place: Optional[Dict] = None
    for repetition in repetitions(value):
        address, type_code = parse_xad(repetition)
        if address is None:
            continue
        if type_code in BIRTH_PLACE_TYPES:
            if birth_place is None:
                place = {key: val for key, val in address.items() if key not in ("use", "type")}
                birth_place = extension(EXT_BIRTH_PLACE, valueAddress=place)
            continue
        if address not in addresses:
            addresses.append(address)
    return addresses, birth_place


def birth_place_from_text(city: str) -> Optional[Dict]:
    """PID-23 (lieu de naissance en texte libre) -> extension birthPlace."""
    if not city:
        return None
    cleaned, insee = extract_insee_code(city)
    place: Dict = {"city": cleaned}
    if insee:
        place["extension"] = [extension(EXT_INSEE_CODE, valueString=insee)]
    return extension(EXT_BIRTH_PLACE, valueAddress=place)
