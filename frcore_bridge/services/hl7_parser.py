"""
Parser HL7 v2.x (pipe & hat) vers un arbre de valeurs typées.

Ce module transforme le texte brut d'un message en `ParsedMessage`: segments,
champs, répétitions, composants et sous-composants. Les séparateurs sont lus
dans le segment MSH du message lui-même.

Notes
- Un champ qui ne se découpe pas correctement (séquence d'échappement invalide...)
    est conservé tel quel en `Simple` et un avertissement est enregistré: un champ
    malformé ne bloque jamais l'extraction du reste du message.
- Le jeu de caractères (MSH-18) est exposé mais n'est pas utilisé pour re-décoder
    le texte (on suppose un texte déjà décodé).
"""
import logging
import re
from typing import List, Optional, Tuple

from frcore_bridge.errors import ConversionWarning, FormatError
from frcore_bridge.models_hl7 import (
    DEFAULT_DELIMITERS,
    Composite,
    Delimiters,
    FieldValue,
    ParsedMessage,
    Repeated,
    Segment,
    Simple,
)

logger = logging.getLogger(__name__)

HEADER_SEGMENT = "MSH"

# MSH-18 (jeu de caractères) dans le découpage littéral de la ligne MSH
MSH_CHARSET_INDEX = 17

_LINE_BREAKS = re.compile(r"\r\n|\n\r|\n")
_REPEATED_CR = re.compile(r"\r+")
_NON_PRINTABLE = re.compile(r"[^\x20-\x7E\r]")


def normalize_text(raw_text: str) -> str:
    """
    Normalise les fins de ligne (CR, LF, CRLF, LFCR, CR multiples) en un seul CR
    et supprime les caractères hors ASCII imprimable.

    Args:
        raw_text: Message brut

    Returns:
        Texte normalisé, segments séparés par "\\r"
    """
    text = _LINE_BREAKS.sub("\r", raw_text)
    text = _REPEATED_CR.sub("\r", text)
    return _NON_PRINTABLE.sub("", text)


def split_records(raw_text: Optional[str]) -> List[str]:
    """Découpe le message en segments non vides (après normalisation)."""
    if not raw_text or not raw_text.strip():
        raise FormatError("Message HL7 vide")
    records = [record.strip() for record in normalize_text(raw_text).split("\r")]
    records = [record for record in records if record]
    if not records:
        raise FormatError("Aucun segment exploitable dans le message HL7")
    if not records[0].startswith(HEADER_SEGMENT):
        raise FormatError(
            f"Le premier segment doit être {HEADER_SEGMENT} (reçu: {records[0][:3]!r})",
            segment=records[0][:3],
        )
    return records


def read_delimiters(header_record: str) -> Delimiters:
    """
    Lit les séparateurs déclarés dans la ligne MSH.

    Le séparateur de champ est le 4e caractère; le champ suivant porte, dans l'ordre,
    les séparateurs de composant, répétition, échappement et sous-composant. Toute
    position absente ou invalide (alphanumérique, doublon) prend la valeur par défaut.
    """
    defaults = DEFAULT_DELIMITERS.as_tuple()
    field_sep = header_record[3] if len(header_record) > 3 else defaults[0]
    if field_sep.isalnum() or field_sep.isspace():
        field_sep = defaults[0]

    after = header_record[4:] if len(header_record) > 4 else ""
    encoding = after.split(field_sep, 1)[0]

    chosen = [field_sep]
    for position, default in enumerate(defaults[1:]):
        candidate = encoding[position] if position < len(encoding) else ""
        if not candidate or candidate.isalnum() or candidate.isspace() or candidate in chosen:
            candidate = default
        chosen.append(candidate)
    return Delimiters(*chosen)


def unescape(text: str, delimiters: Delimiters) -> str:
    """
    Remplace les séquences d'échappement HL7 (\\F\\ \\S\\ \\T\\ \\R\\ \\E\\ \\.br\\ \\Xhh\\).

    Raises:
        ValueError: séquence hexadécimale invalide
    """
    esc = delimiters.escape
    if esc not in text:
        return text
    out: List[str] = []
    i = 0
    while i < len(text):
        char = text[i]
        if char != esc:
            out.append(char)
            i += 1
            continue
        end = text.find(esc, i + 1)
        if end == -1:
            out.append(text[i:])
            break
        token = text[i + 1:end]
        if token == "F":
            out.append(delimiters.field)
        elif token == "S":
            out.append(delimiters.component)
        elif token == "T":
            out.append(delimiters.subcomponent)
        elif token == "R":
            out.append(delimiters.repetition)
        elif token == "E":
            out.append(esc)
        elif token == ".br":
            out.append("\n")
        elif token.startswith("X"):
            out.append(bytes.fromhex(token[1:]).decode("latin-1"))
        else:
            # séquence inconnue: conservée telle quelle
            out.append(text[i:end + 1])
        i = end + 1
    return "".join(out)


def _leaf(text: str, delimiters: Delimiters) -> Simple:
    return Simple(unescape(text.strip(), delimiters))


def _parse_component(text: str, delimiters: Delimiters) -> FieldValue:
    if delimiters.subcomponent in text:
        return Composite(tuple(_leaf(sub, delimiters) for sub in text.split(delimiters.subcomponent)))
    return _leaf(text, delimiters)


def _parse_repetition(text: str, delimiters: Delimiters) -> FieldValue:
    if delimiters.component in text:
        return Composite(tuple(_parse_component(comp, delimiters) for comp in text.split(delimiters.component)))
    if delimiters.subcomponent in text:
        # sous-composants sans composant: un seul composant composite
        return Composite((_parse_component(text, delimiters),))
    return _leaf(text, delimiters)


def parse_field(text: str, delimiters: Delimiters) -> FieldValue:
    """
    Parse un champ en valeur typée.

    Args:
        text: Texte brut du champ
        delimiters: Séparateurs du message

    Returns:
        `Repeated` si le champ contient le séparateur de répétition, sinon
        `Composite` (composants) ou `Simple`
    """
    if delimiters.repetition in text:
        return Repeated(tuple(_parse_repetition(rep, delimiters) for rep in text.split(delimiters.repetition)))
    return _parse_repetition(text, delimiters)


def parse_segment(
    record: str,
    delimiters: Delimiters,
    warnings: Optional[List[ConversionWarning]] = None,
) -> Tuple[str, Segment]:
    """
    Parse une ligne HL7 en (code segment, valeurs).

    Le nombre de valeurs est égal au nombre de jetons séparés par le séparateur de
    champ, champs vides de fin compris. Pour MSH, l'index 1 (caractères d'encodage)
    est conservé brut.
    """
    tokens = record.split(delimiters.field)
    code = tokens[0].strip()
    values: List[FieldValue] = [Simple(code)]
    for index, token in enumerate(tokens[1:], start=1):
        if code == HEADER_SEGMENT and index == 1:
            values.append(Simple(token))
            continue
        try:
            values.append(parse_field(token, delimiters))
        except (ValueError, UnicodeDecodeError) as exc:
            field_number = index + 1 if code == HEADER_SEGMENT else index
            logger.warning(f"Champ {code}-{field_number} conservé brut: {exc}")
            if warnings is not None:
                warnings.append(ConversionWarning(code, field_number, f"champ conservé brut: {exc}"))
            values.append(Simple(token))
    return code, tuple(values)


def parse(raw_text: str) -> ParsedMessage:
    """
    Parse un message HL7 v2.x complet.

    Args:
        raw_text: Message brut (segments séparés par CR, LF, CRLF ou LFCR)

    Returns:
        ParsedMessage immuable

    Raises:
        FormatError: message vide, sans segment, ou ne commençant pas par MSH
    """
    records = split_records(raw_text)
    delimiters = read_delimiters(records[0])
    warnings: List[ConversionWarning] = []

    ordered = []
    for record in records:
        code, segment = parse_segment(record, delimiters, warnings)
        if not code:
            warnings.append(ConversionWarning("", 0, "segment sans code ignoré"))
            continue
        ordered.append((code, segment))

    header = ordered[0][1]
    charset = None
    if len(header) > MSH_CHARSET_INDEX and isinstance(header[MSH_CHARSET_INDEX], Simple):
        charset = header[MSH_CHARSET_INDEX].text or None

    logger.debug(f"Message parsé: {len(ordered)} segments, séparateurs {delimiters.as_tuple()}")
    return ParsedMessage.build(delimiters, ordered, charset=charset, warnings=warnings)
