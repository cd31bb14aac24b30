"""
Handler SIU (rendez-vous) : SCH / PID / AIS / AIL / AIP / DG1 -> Appointment FR Core
"""
import logging
from typing import Dict, List, Optional

from frcore_bridge.models_hl7 import ParsedMessage, Segment
from frcore_bridge.services.bundle import ConversionContext
from frcore_bridge.services.code_tables import SIU_EVENT_STATUS, duration_minutes
from frcore_bridge.services.fhir_fr import (
    CS_ICD10,
    CS_V2_0203,
    PROFILE_APPOINTMENT,
    PROFILE_SCHEDULE,
    codeable_concept,
    new_resource,
)
from frcore_bridge.services.resource_builders import (
    build_header_organizations,
    build_location,
    build_patient,
    build_practitioner,
    participant_type,
)
from frcore_bridge.utils.hl7_dates import add_minutes, to_fhir_datetime
from frcore_bridge.utils.hl7_fields import component_text, field_text, get_field

logger = logging.getLogger(__name__)

DEFAULT_APPOINTMENT_STATUS = "proposed"


def appointment_status(event: str) -> str:
    return SIU_EVENT_STATUS.get(event, DEFAULT_APPOINTMENT_STATUS)


def _concept(value) -> Optional[Dict]:
    """CE (code^libellé^système) -> CodeableConcept."""
    code = component_text(value, 0)
    label = component_text(value, 1)
    return codeable_concept(component_text(value, 2) or None, code, label or None, text=label or None)


def _timing(sch: Segment, ais: Optional[Segment]) -> Dict:
    """
    Début: SCH-11.4 (TQ), sinon AIS-4. Durée: AIS-7/AIS-8, sinon SCH-9/SCH-10.
    Fin: SCH-11.5 si fourni, sinon début + durée.
    """
    start = to_fhir_datetime(field_text(sch, 11, 3)) or to_fhir_datetime(field_text(ais, 4))
    minutes = None
    if ais is not None and field_text(ais, 7):
        minutes = duration_minutes(field_text(ais, 7), field_text(ais, 8))
    if minutes is None and field_text(sch, 9):
        minutes = duration_minutes(field_text(sch, 9), field_text(sch, 10))
    end = to_fhir_datetime(field_text(sch, 11, 4))
    if end is None and start and minutes:
        end = add_minutes(start, minutes)
    timing: Dict = {}
    if start:
        timing["start"] = start
    if end:
        timing["end"] = end
    if minutes:
        timing["minutesDuration"] = minutes
    return timing


def _appointment_identifiers(sch: Segment) -> List[Dict]:
    identifiers = []
    for index, code in ((1, "PLAC"), (2, "FILL")):
        value = field_text(sch, index)
        if not value:
            continue
        identifier = {
            "type": codeable_concept(CS_V2_0203, code, "Placer Identifier" if code == "PLAC" else "Filler Identifier"),
            "value": value,
        }
        authority_oid = field_text(sch, index, 2)
        if authority_oid:
            identifier["system"] = f"urn:oid:{authority_oid}"
        identifiers.append(identifier)
    return identifiers


def handle_siu_message(parsed: ParsedMessage, ctx: ConversionContext) -> None:
    """
    Construit Patient, Appointment, Schedule, Location et Practitioner(s).

    Args:
        parsed: Message HL7 parsé
        ctx: Contexte de conversion
    """
    pid = parsed.first("PID")
    if pid is not None:
        build_patient(ctx, pid)
        ctx.add_focus("patient")
    else:
        ctx.warn("PID", 0, "segment PID absent: rendez-vous sans patient")

    build_header_organizations(ctx, parsed.header)

    sch = parsed.first("SCH")
    if sch is None:
        ctx.warn("SCH", 0, "segment SCH absent: Appointment non produit")
        return

    services = parsed.all("AIS")
    ais = services[0] if services else None
    appointment = new_resource("Appointment", PROFILE_APPOINTMENT)
    appointment["status"] = appointment_status(ctx.event_type)
    appointment["identifier"] = _appointment_identifiers(sch)
    appointment.update(_timing(sch, ais))
    if appointment["status"] in ("booked", "arrived", "fulfilled") and "start" not in appointment:
        ctx.warn("SCH", 11, "rendez-vous sans date de début")

    service_types = [_concept(get_field(item, 3)) for item in services if field_text(item, 3)]
    if service_types:
        appointment["serviceType"] = service_types
    if field_text(sch, 8):
        appointment["appointmentType"] = _concept(get_field(sch, 8))
    reason = _concept(get_field(sch, 7)) or _concept(get_field(sch, 6))
    reasons = ([reason] if reason else []) + diagnosis_reasons(parsed.all("DG1"))
    if reasons:
        appointment["reasonCode"] = reasons
    if appointment["status"] == "cancelled" and field_text(sch, 6):
        appointment["cancelationReason"] = _concept(get_field(sch, 6))

    participants = []
    if ctx.patient_reference:
        participants.append({
            "actor": ctx.patient_reference,
            "required": "required",
            "status": "accepted",
        })

    actors = []
    for aip in parsed.all("AIP"):
        practitioner = build_practitioner(ctx, get_field(aip, 3))
        if practitioner is None:
            ctx.warn("AIP", 3, "AIP sans intervenant ignoré")
            continue
        role = field_text(aip, 4)
        participants.append({
            "type": [participant_type("PPRF", "primary performer")] if not role else [_concept(get_field(aip, 4))],
            "actor": {"reference": practitioner},
            "required": "required",
            "status": "accepted",
        })
        actors.append({"reference": practitioner})

    for ail in parsed.all("AIL"):
        location = build_location(ctx, get_field(ail, 3), role="location")
        if location is None:
            ctx.warn("AIL", 3, "AIL sans lieu ignoré")
            continue
        participants.append({"actor": {"reference": location}, "required": "required", "status": "accepted"})
        actors.append({"reference": location})

    if not participants:
        ctx.warn("SCH", 0, "rendez-vous sans participant")
    appointment["participant"] = participants

    schedules = [url for url in (build_schedule(ctx, item, actors) for item in services or [None]) if url]
    if schedules:
        appointment["supportingInformation"] = [{"reference": url} for url in schedules]

    ctx.add(appointment, "appointment")
    ctx.add_focus("appointment")
    logger.info(f"SIU^{ctx.event_type}: Appointment {appointment['status']}")


def build_schedule(ctx: ConversionContext, ais: Optional[Segment], actors: List[Dict]) -> Optional[str]:
    """Schedule (agenda) d'une prestation AIS (un par AIS), porté par les intervenants / lieux."""
    if ais is None and not actors:
        return None
    schedule = new_resource("Schedule", PROFILE_SCHEDULE)
    schedule["active"] = True
    if ais is not None and field_text(ais, 3):
        schedule["serviceType"] = [_concept(get_field(ais, 3))]
    if not actors:
        # actor obligatoire: à défaut, le patient
        actors = [ctx.patient_reference] if ctx.patient_reference else []
    if not actors:
        ctx.warn("AIS", 0, "Schedule non produit: aucun acteur")
        return None
    schedule["actor"] = [dict(actor) for actor in actors]
    return ctx.add(schedule, "schedule")


def diagnosis_reasons(dg1_segments: List[Segment]) -> List[Dict]:
    """DG1-3 (code CIM-10 ^ libellé), libellé en DG1-4 à défaut."""
    reasons = []
    for dg1 in dg1_segments:
        code = field_text(dg1, 3)
        label = component_text(get_field(dg1, 3), 1) or field_text(dg1, 4)
        concept = codeable_concept(CS_ICD10 if code else None, code, label or None, text=label or None)
        if concept:
            reasons.append(concept)
    return reasons
