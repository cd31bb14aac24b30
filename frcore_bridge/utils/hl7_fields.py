"""
Accès aux champs d'un segment parsé.

Toutes les fonctions acceptent les trois formes de valeur (`Simple`, `Repeated`,
`Composite`) et renvoient une valeur vide plutôt que de lever une exception
lorsqu'une position n'existe pas.
"""
from typing import List, Optional

from frcore_bridge.models_hl7 import EMPTY, Composite, FieldValue, Repeated, Segment, Simple


def get_field(segment: Optional[Segment], index: int) -> FieldValue:
    """Valeur du champ `index` (index 0 = code segment), `Simple("")` si absente."""
    if segment is None or index < 0 or index >= len(segment):
        return EMPTY
    return segment[index]


def repetitions(value: FieldValue) -> List[FieldValue]:
    """Liste des répétitions non vides d'une valeur."""
    if isinstance(value, Repeated):
        return [item for item in value.items if not item.is_empty()]
    if value.is_empty():
        return []
    return [value]


def first_repetition(value: FieldValue) -> FieldValue:
    if isinstance(value, Repeated):
        return value.items[0] if value.items else EMPTY
    return value


def component(value: FieldValue, index: int) -> FieldValue:
    """Composant `index` (0-based) de la première répétition."""
    value = first_repetition(value)
    if isinstance(value, Composite):
        return value.parts[index] if 0 <= index < len(value.parts) else EMPTY
    if isinstance(value, Simple):
        return value if index == 0 else EMPTY
    return EMPTY


def subcomponent(value: FieldValue, index: int) -> FieldValue:
    """Sous-composant `index` (0-based) d'un composant."""
    if isinstance(value, Composite):
        return value.parts[index] if 0 <= index < len(value.parts) else EMPTY
    if isinstance(value, Simple):
        return value if index == 0 else EMPTY
    return subcomponent(first_repetition(value), index)


def text(value: FieldValue) -> str:
    """Texte de la première feuille de la valeur."""
    if isinstance(value, Simple):
        return value.text
    if isinstance(value, Repeated):
        return text(value.items[0]) if value.items else ""
    if isinstance(value, Composite):
        return text(value.parts[0]) if value.parts else ""
    return ""


def component_text(value: FieldValue, comp: int, sub: int = 0) -> str:
    """Texte du composant `comp` / sous-composant `sub` (0-based)."""
    return text(subcomponent(component(value, comp), sub))


def field_text(segment: Optional[Segment], index: int, comp: int = 0, sub: int = 0) -> str:
    """Raccourci: texte de segment[index].comp.sub (composant et sous-composant 0-based)."""
    return component_text(get_field(segment, index), comp, sub)


def components_text(value: FieldValue) -> List[str]:
    """Textes de tous les composants de la première répétition."""
    value = first_repetition(value)
    if isinstance(value, Composite):
        return [text(part) for part in value.parts]
    if isinstance(value, Simple):
        return [value.text]
    return []


def flatten(value: FieldValue) -> List[str]:
    """Toutes les feuilles non vides, dans l'ordre."""
    if isinstance(value, Simple):
        return [value.text] if value.text else []
    items = value.items if isinstance(value, Repeated) else value.parts
    result: List[str] = []
    for item in items:
        result.extend(flatten(item))
    return result


def encode(value: FieldValue, component_sep: str = "^", repetition_sep: str = "~", sub_sep: str = "&") -> str:
    """Ré-encode une valeur (diagnostic, extensions de valeur brute)."""
    if isinstance(value, Simple):
        return value.text
    if isinstance(value, Repeated):
        return repetition_sep.join(encode(item, component_sep, repetition_sep, sub_sep) for item in value.items)
    parts = []
    for part in value.parts:
        if isinstance(part, Composite):
            parts.append(sub_sep.join(text(sub) for sub in part.parts))
        else:
            parts.append(encode(part, component_sep, repetition_sep, sub_sep))
    return component_sep.join(parts)
