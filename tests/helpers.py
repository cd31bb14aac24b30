"""
Utilitaires de test: construction de messages HL7 et d'INS factices, accès au Bundle
"""
from typing import Dict, List, Optional


def segment(code: str, fields: Dict[int, str]) -> str:
    """Ligne HL7 avec les champs `fields` ({numéro: valeur}), les autres vides."""
    size = max(fields) + 1 if fields else 1
    tokens = [code] + [""] * (size - 1)
    for index, value in fields.items():
        tokens[index] = value
    return "|".join(tokens)


def msh(fields: Dict[int, str]) -> str:
    """Ligne MSH (numérotation HL7: MSH-3 est le 3e champ, MSH-1 est le séparateur)."""
    size = max(max(fields), 2)
    tokens = ["MSH", "^~\\&"] + [""] * (size - 2)
    for number, value in fields.items():
        tokens[number - 1] = value
    return "|".join(tokens)


def default_msh(message_type: str, control_id: str = "MSG0001", **overrides: str) -> str:
    fields = {
        3: "SIH_APP",
        4: "HOPITAL^1.2.250.1.71.1.2.3^ISO",
        5: "DPI",
        6: "CLINIQUE",
        7: "20250115103000",
        9: message_type,
        10: control_id,
        11: "P",
        12: "2.5",
    }
    fields.update({int(key.lstrip("f")): value for key, value in overrides.items()})
    return msh(fields)


def message(*segments: str, separator: str = "\r") -> str:
    return separator.join(segments)


def fake_nir(sex: int = 1, year: int = 80, month: int = 1, department: str = "75",
             commune: str = "056", order: str = "123") -> str:
    """NIR factice de 15 chiffres avec une clé de contrôle valide (97 - n mod 97)."""
    base = f"{sex}{year:02d}{month:02d}{department}{commune}{order}"
    key = 97 - int(base) % 97
    return f"{base}{key:02d}"


# --- Bundle ---

def resources(bundle: Dict, resource_type: str) -> List[Dict]:
    return [entry["resource"] for entry in bundle.get("entry", []) if entry["resource"]["resourceType"] == resource_type]


def resource(bundle: Dict, resource_type: str) -> Dict:
    found = resources(bundle, resource_type)
    assert found, f"aucune ressource {resource_type} dans le Bundle"
    return found[0]


def resolve(bundle: Dict, ref: Optional[Dict]) -> Optional[Dict]:
    """Ressource désignée par une Reference {reference: urn:uuid:...}."""
    if not ref:
        return None
    for entry in bundle.get("entry", []):
        if entry["fullUrl"] == ref.get("reference"):
            return entry["resource"]
    return None


def extension_of(resource_dict: Dict, url: str) -> Optional[Dict]:
    for ext in resource_dict.get("extension", []):
        if ext["url"] == url:
            return ext
    return None


def sub_extension(ext: Dict, url: str) -> Optional[Dict]:
    for sub in ext.get("extension", []):
        if sub["url"] == url:
            return sub
    return None


def warning_segments(warnings) -> List[str]:
    return [warning.segment for warning in warnings]
