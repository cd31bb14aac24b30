"""
Extraction et dédoublonnage des noms HL7 (XPN / XCN) vers HumanName FHIR
"""
from typing import Dict, Iterable, List, Optional, Tuple

from frcore_bridge.models_hl7 import FieldValue
from frcore_bridge.utils.hl7_fields import component_text, repetitions

# XPN-7 (type de nom) -> HumanName.use
NAME_USE_BY_TYPE = {
    "L": "official",   # nom de naissance / légal
    "D": "usual",      # nom d'usage
    "M": "maiden",
    "B": "maiden",
    "N": "nickname",
    "A": "anonymous",
    "S": "anonymous",
    "U": "temp",
}
DEFAULT_NAME_USE = "official"

SUFFIX_MARKERS = {"JR", "SR", "II", "III", "IV", "V", "DR", "PR"}


def _split_given(tokens: Iterable[str]) -> Tuple[List[str], List[str]]:
    """Sépare les prénoms des suffixes (Jr, Sr, III, Dr...) glissés dans les prénoms."""
    given: List[str] = []
    suffix: List[str] = []
    for token in tokens:
        kept = []
        for word in token.split():
            if word.upper().rstrip(".") in SUFFIX_MARKERS:
                suffix.append(word)
            else:
                kept.append(word)
        if kept:
            given.append(" ".join(kept))
    return given, suffix


def build_human_name(
    family: str,
    given_tokens: Iterable[str],
    suffix: str = "",
    prefix: str = "",
    type_code: str = "",
) -> Optional[Dict]:
    """Construit un HumanName (None si ni nom ni prénom)."""
    given, moved_suffix = _split_given([token for token in given_tokens if token])
    suffixes = moved_suffix + ([suffix] if suffix else [])
    if not family and not given:
        return None
    name: Dict = {"use": NAME_USE_BY_TYPE.get(type_code.upper(), DEFAULT_NAME_USE)}
    if family:
        name["family"] = family
    if given:
        name["given"] = given
    if suffixes:
        name["suffix"] = suffixes
    if prefix:
        name["prefix"] = [prefix]
    return name


def parse_xpn(value: FieldValue) -> Optional[Dict]:
    """
    Parse une répétition XPN: NOM^PRENOM^AUTRES PRENOMS^SUFFIXE^PREFIXE^DIPLOME^TYPE.

    Les autres prénoms (XPN-3) peuvent être séparés par des virgules.
    """
    others = [token.strip() for token in component_text(value, 2).split(",")]
    return build_human_name(
        family=component_text(value, 0),
        given_tokens=[component_text(value, 1)] + others,
        suffix=component_text(value, 3),
        prefix=component_text(value, 4),
        type_code=component_text(value, 6),
    )


def parse_xcn_name(value: FieldValue) -> Optional[Dict]:
    """Nom d'un XCN: ID^NOM^PRENOM^AUTRES^SUFFIXE^PREFIXE^^^^TYPE."""
    return build_human_name(
        family=component_text(value, 1),
        given_tokens=[component_text(value, 2), component_text(value, 3)],
        suffix=component_text(value, 4),
        prefix=component_text(value, 5),
        type_code=component_text(value, 9),
    )


def _key(name: Dict) -> Tuple:
    return (name.get("use"), name.get("family", ""), frozenset(name.get("given", [])))


def merge_names(names: List[Dict]) -> List[Dict]:
    """
    Fusionne les entrées partielles et supprime les doublons.

    - une entrée avec seulement un nom et une entrée avec seulement des prénoms,
      de même `use`, sont fusionnées (à la position de la première);
    - les triplets (use, family, prénoms) identiques ne sont gardés qu'une fois.
    """
    merged: List[Dict] = []
    for name in names:
        partner = None
        if "family" in name and "given" not in name:
            partner = next(
                (m for m in merged if m.get("use") == name.get("use") and "given" in m and "family" not in m),
                None,
            )
        elif "given" in name and "family" not in name:
            partner = next(
                (m for m in merged if m.get("use") == name.get("use") and "family" in m and "given" not in m),
                None,
            )
        if partner is not None:
            for key, value in name.items():
                if key in ("suffix", "prefix"):
                    partner[key] = partner.get(key, []) + [v for v in value if v not in partner.get(key, [])]
                else:
                    partner.setdefault(key, value)
            continue
        merged.append(dict(name))

    result: List[Dict] = []
    seen = set()
    for name in merged:
        key = _key(name)
        if key in seen:
            continue
        seen.add(key)
        result.append(name)
    return result


def resolve_names(*fields: FieldValue) -> List[Dict]:
    """Noms HumanName dédoublonnés depuis un ou plusieurs champs XPN répétés."""
    names = []
    for field_value in fields:
        for repetition in repetitions(field_value):
            name = parse_xpn(repetition)
            if name:
                names.append(name)
    return merge_names(names)


def name_display(name: Optional[Dict]) -> Optional[str]:
    if not name:
        return None
    parts = list(name.get("prefix", [])) + list(name.get("given", [])) + [name.get("family", "")]
    return " ".join(part for part in parts if part) or None
