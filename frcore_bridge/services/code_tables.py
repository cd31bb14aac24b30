"""
Tables de correspondance HL7 v2 -> FHIR utilisées par les handlers.

Tables fixes (pas de dépendance à la base de vocabulaires): genre, classe de
patient, mode de sortie, type d'admission, statuts de commande, priorités,
statuts d'observation, évènements SIU, types de participation.
"""
from typing import Dict, Optional, Tuple

from frcore_bridge.services.fhir_fr import CS_ACT_CODE

# Table 0001 -> AdministrativeGender
GENDER_MAP = {
    "M": "male",
    "F": "female",
    "O": "other",
    "A": "other",
    "U": "unknown",
    "N": "unknown",
}

# PV1-2 (classe patient) -> (code v3-ActCode, libellé)
PATIENT_CLASS_MAP: Dict[str, Tuple[str, str]] = {
    "I": ("IMP", "inpatient encounter"),
    "O": ("AMB", "ambulatory"),
    "E": ("EMER", "emergency"),
    "P": ("PRENC", "pre-admission"),
    "R": ("AMB", "ambulatory"),
    "B": ("IMP", "inpatient encounter"),
    "H": ("IMP", "inpatient encounter"),
    "C": ("AMB", "ambulatory"),
    "U": ("AMB", "ambulatory"),
    "N": ("AMB", "ambulatory"),
}
DEFAULT_PATIENT_CLASS = ("AMB", "ambulatory")

# PV1-36 (mode de sortie, table 0112) -> Encounter.status
DISCHARGE_STATUS_MAP = {
    "01": "finished",
    "02": "finished",
    "03": "finished",
    "04": "finished",
    "05": "finished",
    "06": "finished",
    "07": "finished",
    "08": "finished",
    "09": "finished",
    "20": "finished",
    "30": "in-progress",
    "40": "finished",
    "41": "finished",
    "42": "finished",
}
DISCHARGE_DISPLAY = {
    "01": "Discharged to home or self care",
    "02": "Discharged/transferred to another short term general hospital",
    "03": "Discharged/transferred to skilled nursing facility",
    "04": "Discharged/transferred to an intermediate care facility",
    "05": "Discharged/transferred to another type of institution",
    "06": "Discharged/transferred to home under care of organized home health service",
    "07": "Left against medical advice",
    "09": "Admitted as an inpatient to this hospital",
    "20": "Expired",
    "30": "Still patient",
}

# Évènements ADT qui fixent directement le statut de la venue
ENCOUNTER_STATUS_BY_EVENT = {
    "A03": "finished",
    "A05": "planned",
    "A14": "planned",
    "A11": "cancelled",
    "A27": "cancelled",
    "A38": "cancelled",
}

# PV1-4 (type d'admission, table 0007) -> v3-ActPriority
ADMISSION_PRIORITY_MAP = {
    "A": ("EM", "emergency"),
    "E": ("EM", "emergency"),
    "L": ("EM", "emergency"),
    "U": ("UR", "urgent"),
    "C": ("EL", "elective"),
    "R": ("R", "routine"),
    "N": ("R", "routine"),
}

# PV1-14 (source d'admission, table 0023)
ADMIT_SOURCE_DISPLAY = {
    "1": "Physician referral",
    "2": "Clinic referral",
    "3": "HMO referral",
    "4": "Transfer from a hospital",
    "5": "Transfer from a skilled nursing facility",
    "6": "Transfer from another health care facility",
    "7": "Emergency room",
    "8": "Court/law enforcement",
    "9": "Information not available",
}

# Participations PV1 -> v3-ParticipationType
PARTICIPATION_BY_PV1_FIELD = {
    7: ("ATND", "attender"),
    8: ("REF", "referrer"),
    9: ("CON", "consultant"),
    17: ("ADM", "admitter"),
}

# ROL-3 (rôle, table 0443) -> v3-ParticipationType
ROLE_PARTICIPATION_MAP = {
    "AD": ("ADM", "admitter"),
    "AT": ("ATND", "attender"),
    "CP": ("CON", "consultant"),
    "FHCP": ("PPRF", "primary performer"),
    "PP": ("PPRF", "primary performer"),
    "RP": ("REF", "referrer"),
    "RT": ("REF", "referrer"),
    "ODRP": ("REF", "referrer"),
}

# ORC-1 / ORC-5 -> ServiceRequest.status
ORDER_STATUS_MAP = {
    "NW": "active",
    "OK": "active",
    "RP": "active",
    "SC": "active",
    "IP": "active",
    "A": "active",
    "UA": "on-hold",
    "HD": "on-hold",
    "CA": "revoked",
    "OC": "revoked",
    "DC": "completed",
    "CM": "completed",
    "ER": "entered-in-error",
}
DEFAULT_ORDER_STATUS = "active"

# OBR-5 / TQ1-9 -> ServiceRequest.priority
ORDER_PRIORITY_MAP = {
    "S": "stat",
    "A": "asap",
    "R": "routine",
    "P": "urgent",
    "T": "urgent",
    "C": "urgent",
}

# OBX-11 -> Observation.status
OBSERVATION_STATUS_MAP = {
    "F": "final",
    "P": "preliminary",
    "C": "corrected",
    "D": "cancelled",
    "I": "registered",
    "N": "unknown",
    "O": "registered",
    "R": "preliminary",
    "S": "preliminary",
    "X": "cancelled",
    "W": "entered-in-error",
    "U": "final",
}

# Évènement SIU -> Appointment.status
SIU_EVENT_STATUS = {
    "S12": "booked",
    "S13": "cancelled",
    "S14": "booked",
    "S15": "booked",
    "S16": "cancelled",
    "S17": "entered-in-error",
    "S26": "proposed",
}

# Unités de durée (AIS-8 / SCH-10) -> minutes
DURATION_UNITS_MINUTES = {
    "S": 1 / 60,
    "SEC": 1 / 60,
    "M": 1,
    "MIN": 1,
    "H": 60,
    "HR": 60,
    "D": 1440,
}

# IN1-17 (lien assuré/patient) -> subscriber-relationship
SUBSCRIBER_RELATIONSHIP_MAP = {
    "SEL": "self",
    "01": "self",
    "SPO": "spouse",
    "02": "spouse",
    "CHD": "child",
    "03": "child",
    "PAR": "parent",
    "EME": "other",
    "OTH": "other",
}

# PID-16 -> v3-MaritalStatus
MARITAL_STATUS_MAP = {
    "M": ("M", "Married"),
    "S": ("S", "Never Married"),
    "D": ("D", "Divorced"),
    "W": ("W", "Widowed"),
    "A": ("L", "Legally Separated"),
    "P": ("T", "Domestic partner"),
    "U": ("UNK", "unknown"),
}

# PID-32 (fiabilité de l'identité) : codes FR Core acceptés
IDENTITY_RELIABILITY_CODES = {
    "VIDE": "Identité non encore qualifiée",
    "PROV": "Identité provisoire",
    "VALI": "Identité validée",
    "DOUTE": "Identité douteuse",
    "FICTI": "Identité fictive",
    "RECUP": "Identité récupérée",
    "QUAL": "Identité qualifiée",
}
DEFAULT_IDENTITY_RELIABILITY = "PROV"

# NK1-3 (lien avec le patient) -> code FR (TRE_R260)
CONTACT_RELATIONSHIP_MAP = {
    "SPO": "SPOUSE",
    "HUSB": "SPOUSE",
    "WIFE": "SPOUSE",
    "DOM": "SPOUSE",
    "CHD": "CHILD",
    "SON": "CHILD",
    "DAU": "CHILD",
    "PAR": "PARENT",
    "MTH": "PARENT",
    "FTH": "PARENT",
    "GRD": "GUARD",
    "EMC": "EMERGENCY",
    "EMR": "EMERGENCY",
    "CGV": "CAREGIVER",
    "FND": "PRN",
    "OTH": "FAMMEMB",
}


def encounter_class(patient_class: str) -> Dict[str, str]:
    code, display = PATIENT_CLASS_MAP.get(patient_class.upper(), DEFAULT_PATIENT_CLASS)
    return {"system": CS_ACT_CODE, "code": code, "display": display}


def encounter_status(event: str, discharge_code: str, has_discharge_date: bool) -> str:
    """Statut de la venue: évènement, puis mode de sortie, puis date de sortie."""
    if event in ENCOUNTER_STATUS_BY_EVENT:
        return ENCOUNTER_STATUS_BY_EVENT[event]
    if discharge_code in DISCHARGE_STATUS_MAP:
        return DISCHARGE_STATUS_MAP[discharge_code]
    if discharge_code:
        return "finished"
    return "finished" if has_discharge_date else "in-progress"


def duration_minutes(value: str, unit: str) -> Optional[int]:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    factor = DURATION_UNITS_MINUTES.get((unit or "M").upper(), 1)
    return int(round(amount * factor))
