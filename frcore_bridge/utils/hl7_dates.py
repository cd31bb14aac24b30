"""
Normalisation des dates/heures HL7 (DTM) vers ISO-8601 (FHIR date / dateTime).

Format accepté: YYYYMMDD[HHMM[SS[.S+]]][+/-ZZZZ]. Une date sans heure est
complétée à minuit pour les dateTime. Une valeur malformée renvoie None.
"""
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

_HL7_DTM = re.compile(
    r"^(?P<date>\d{8})"
    r"(?:(?P<hour>\d{2})(?P<minute>\d{2})?(?P<second>\d{2})?(?:\.\d{1,4})?)?"
    r"(?P<tz>[+-]\d{4})?$"
)


def parse_hl7_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse un timestamp HL7.

    Args:
        value: Timestamp HL7 (ex: "20250101120000", "19800101", "202501011200+0100")

    Returns:
        datetime (aware si un décalage est fourni) ou None
    """
    if not value:
        return None
    match = _HL7_DTM.match(value.strip())
    if not match:
        return None
    try:
        parsed = datetime.strptime(match.group("date"), "%Y%m%d")
        parsed = parsed.replace(
            hour=int(match.group("hour") or 0),
            minute=int(match.group("minute") or 0),
            second=int(match.group("second") or 0),
        )
    except ValueError:
        return None
    tz = match.group("tz")
    if tz:
        sign = 1 if tz[0] == "+" else -1
        try:
            offset = timedelta(hours=int(tz[1:3]), minutes=int(tz[3:5]))
            parsed = parsed.replace(tzinfo=timezone(sign * offset))
        except ValueError:
            return None
    return parsed


def to_fhir_date(value: Optional[str]) -> Optional[str]:
    """HL7 -> "YYYY-MM-DD" (FHIR date)."""
    parsed = parse_hl7_datetime(value)
    return parsed.strftime("%Y-%m-%d") if parsed else None


def format_fhir_datetime(parsed: datetime) -> str:
    result = parsed.strftime("%Y-%m-%dT%H:%M:%S")
    if parsed.tzinfo is not None:
        offset = parsed.strftime("%z")
        result += f"{offset[:3]}:{offset[3:]}"
    return result


def to_fhir_datetime(value: Optional[str]) -> Optional[str]:
    """HL7 -> "YYYY-MM-DDTHH:MM:SS[+HH:MM]" (FHIR dateTime)."""
    parsed = parse_hl7_datetime(value)
    return format_fhir_datetime(parsed) if parsed else None


def to_fhir_instant(value: Optional[str], fallback: Optional[datetime] = None) -> str:
    """
    HL7 -> FHIR instant (fuseau obligatoire).

    Une heure sans décalage est considérée en UTC. Valeur absente ou malformée:
    `fallback`, sinon l'heure courante.
    """
    parsed = parse_hl7_datetime(value)
    if parsed is None:
        parsed = fallback or datetime.now(timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return format_fhir_datetime(parsed)


def add_minutes(fhir_datetime: Optional[str], minutes: int) -> Optional[str]:
    """Ajoute `minutes` à un dateTime FHIR produit par `to_fhir_datetime`."""
    if not fhir_datetime:
        return None
    try:
        parsed = datetime.fromisoformat(fhir_datetime)
    except ValueError:
        return None
    return format_fhir_datetime(parsed + timedelta(minutes=minutes))
