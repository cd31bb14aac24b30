"""
Modèle typé d'un message HL7 v2 parsé

Contenu
- `Simple`, `Repeated`, `Composite`: valeur d'un champ (type somme fermé et récursif).
- `Delimiters`: séparateurs déclarés dans le MSH.
- `ParsedMessage`: segments indexés par code (ordre conservé), immuable.

Notes
- Une occurrence de segment est un tuple de valeurs, aligné sur la numérotation HL7:
    l'index 0 est le code du segment. Pour MSH, le tuple est le découpage littéral de
    la ligne: l'index 1 contient les caractères d'encodage bruts et MSH-n est à l'index n-1.
"""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterator, List, Mapping, Optional, Tuple, Union

from frcore_bridge.errors import ConversionWarning


@dataclass(frozen=True)
class Simple:
    """Valeur feuille (texte déjà nettoyé et déséchappé)."""
    text: str = ""

    def is_empty(self) -> bool:
        return self.text == ""


@dataclass(frozen=True)
class Repeated:
    """Champ répété (séparateur de répétition)."""
    items: Tuple["FieldValue", ...] = ()

    def is_empty(self) -> bool:
        return all(item.is_empty() for item in self.items)


@dataclass(frozen=True)
class Composite:
    """Composants d'un champ, ou sous-composants d'un composant."""
    parts: Tuple["FieldValue", ...] = ()

    def is_empty(self) -> bool:
        return all(part.is_empty() for part in self.parts)


FieldValue = Union[Simple, Repeated, Composite]

EMPTY = Simple("")

Segment = Tuple[FieldValue, ...]


@dataclass(frozen=True)
class Delimiters:
    field: str = "|"
    component: str = "^"
    repetition: str = "~"
    escape: str = "\\"
    subcomponent: str = "&"

    @property
    def encoding_characters(self) -> str:
        return f"{self.component}{self.repetition}{self.escape}{self.subcomponent}"

    def as_tuple(self) -> Tuple[str, str, str, str, str]:
        return (self.field, self.component, self.repetition, self.escape, self.subcomponent)


DEFAULT_DELIMITERS = Delimiters()


@dataclass(frozen=True)
class ParsedMessage:
    """Message HL7 parsé (créé une fois, jamais modifié)."""
    delimiters: Delimiters
    segments: Mapping[str, Tuple[Segment, ...]]
    charset: Optional[str] = None
    warnings: Tuple[ConversionWarning, ...] = ()
    # ordre d'origine des segments: (code, rang de l'occurrence)
    sequence: Tuple[Tuple[str, int], ...] = ()

    @classmethod
    def build(
        cls,
        delimiters: Delimiters,
        ordered: List[Tuple[str, Segment]],
        charset: Optional[str] = None,
        warnings: Optional[List[ConversionWarning]] = None,
    ) -> "ParsedMessage":
        grouped = {}
        sequence = []
        for code, segment in ordered:
            occurrences = grouped.setdefault(code, [])
            sequence.append((code, len(occurrences)))
            occurrences.append(segment)
        frozen = MappingProxyType({code: tuple(occ) for code, occ in grouped.items()})
        return cls(
            delimiters=delimiters,
            segments=frozen,
            charset=charset,
            warnings=tuple(warnings or ()),
            sequence=tuple(sequence),
        )

    def has(self, code: str) -> bool:
        return bool(self.segments.get(code))

    def first(self, code: str) -> Optional[Segment]:
        """Première occurrence du segment `code`, ou None."""
        occurrences = self.segments.get(code)
        return occurrences[0] if occurrences else None

    def all(self, code: str) -> Tuple[Segment, ...]:
        return self.segments.get(code, ())

    @property
    def header(self) -> Optional[Segment]:
        return self.first("MSH")

    def segment_codes(self) -> List[str]:
        return list(self.segments.keys())

    def in_order(self) -> Iterator[Tuple[str, Segment]]:
        """Segments dans l'ordre du message d'origine."""
        for code, rank in self.sequence:
            yield code, self.segments[code][rank]

    def __iter__(self) -> Iterator[Tuple[str, Segment]]:
        for code, occurrences in self.segments.items():
            for segment in occurrences:
                yield code, segment
