"""
Handler ADT (IHE PAM France) : PID / PV1 / PV2 / ROL / NK1 / IN1 / OBX -> ressources FR Core

Ordre de construction
1. Patient (PID, PD1, MRG pour A40)
2. Organisations de l'en-tête (MSH-4 émetteur, MSH-6 destinataire)
3. Encounter + Location(s) (PV1 / PV2)
4. Practitioner / PractitionerRole (PV1-7/8/9/17, ROL)
5. RelatedPerson (NK1), Coverage + payeur (IN1), Observation (OBX)
6. Passe d'enrichissement par segments Z (mode français)

Notes
- Sans PID, ni Patient ni ressources qui le référencent (Encounter, NK1, IN1) ne sont produits.
- Une Encounter a toujours au moins une location: Location synthétisée si PV1-3 est vide.
"""
import logging
from typing import Dict, Optional

from frcore_bridge.models_hl7 import ParsedMessage, Segment
from frcore_bridge.services.bundle import ConversionContext
from frcore_bridge.services.code_tables import (
    ADMISSION_PRIORITY_MAP,
    ADMIT_SOURCE_DISPLAY,
    DISCHARGE_DISPLAY,
    PARTICIPATION_BY_PV1_FIELD,
    ROLE_PARTICIPATION_MAP,
    encounter_class,
    encounter_status,
)
from frcore_bridge.services.fhir_fr import (
    CS_ACT_PRIORITY,
    CS_V2_0023,
    CS_V2_0112,
    EXT_ESTIMATED_DISCHARGE,
    PROFILE_ENCOUNTER,
    add_extension,
    codeable_concept,
    extension,
    new_resource,
)
from frcore_bridge.services.french_extensions import apply_french_extensions
from frcore_bridge.services.identifier_manager import build_visit_identifier, parse_cx_identifier
from frcore_bridge.services.resource_builders import (
    apply_primary_care,
    build_coverage,
    build_default_location,
    build_header_organizations,
    build_location,
    build_observations,
    build_patient,
    build_practitioner,
    build_practitioner_role,
    build_related_person,
    participant_type,
    service_type,
)
from frcore_bridge.utils.hl7_dates import to_fhir_datetime
from frcore_bridge.utils.hl7_fields import component_text, field_text, get_field, repetitions

logger = logging.getLogger(__name__)

# Évènements qui décrivent une venue: PV1 attendu
VISIT_EVENTS = {"A01", "A02", "A03", "A04", "A05", "A06", "A07", "A11", "A12", "A13", "A21", "A22", "A38"}

# Positions consultées pour la date de sortie prévue: (segment, champ)
ESTIMATED_DISCHARGE_FIELDS = (("PV2", 9), ("ZFV", 6))


def handle_adt_message(parsed: ParsedMessage, ctx: ConversionContext) -> None:
    """
    Construit les ressources d'un message ADT dans le Bundle du contexte.

    Args:
        parsed: Message HL7 parsé
        ctx: Contexte de conversion (Bundle initialisé par le routeur)
    """
    pid = parsed.first("PID")
    if pid is not None:
        build_patient(ctx, pid)
        patient = ctx.resource("patient")
        apply_primary_care(ctx, patient, parsed.first("PD1"))
        if ctx.event_type == "A40" or parsed.has("MRG"):
            apply_merge_links(ctx, patient, parsed)
        ctx.add_focus("patient")
    else:
        ctx.warn("PID", 0, "segment PID absent: Patient et ressources dépendantes non produits")

    build_header_organizations(ctx, parsed.header)

    pv1 = parsed.first("PV1")
    if pv1 is not None and ctx.patient_reference is not None:
        build_encounter(ctx, pv1, parsed.first("PV2"), parsed)
        ctx.add_focus("encounter")
    elif pv1 is None and ctx.event_type in VISIT_EVENTS:
        ctx.warn("PV1", 0, f"segment PV1 absent pour {ctx.event_type}: Encounter non produite")
    elif pv1 is not None:
        ctx.warn("PV1", 0, "Encounter non produite: aucun patient")

    for rol in parsed.all("ROL"):
        add_role_participant(ctx, rol)

    for nk1 in parsed.all("NK1"):
        build_related_person(ctx, nk1)

    for in1 in parsed.all("IN1"):
        build_coverage(ctx, in1, role="coverage")

    build_observations(ctx, list(parsed.all("OBX")))

    if ctx.options.french_mode:
        apply_french_extensions(parsed, ctx)

    logger.info(f"ADT^{ctx.event_type}: {len(ctx.bundle)} entrées dans le Bundle")


def apply_merge_links(ctx: ConversionContext, patient: Dict, parsed: ParsedMessage) -> None:
    """A40: MRG-1 (identifiants du patient absorbé) -> Patient.link (type replaces)."""
    for mrg in parsed.all("MRG"):
        for repetition in repetitions(get_field(mrg, 1)):
            cx = parse_cx_identifier(repetition)
            if not cx.has_value:
                continue
            other: Dict = {"identifier": {"value": cx.value}}
            if cx.authority_oid:
                other["identifier"]["system"] = f"urn:oid:{cx.authority_oid}"
            if cx.authority_name:
                other["display"] = f"{cx.authority_name} {cx.value}"
            patient.setdefault("link", []).append({"other": other, "type": "replaces"})
    if not patient.get("link"):
        ctx.warn("MRG", 1, "fusion sans identifiant de patient absorbé")


def _estimated_discharge(parsed: ParsedMessage, admit: Optional[str]) -> Optional[str]:
    for code, index in ESTIMATED_DISCHARGE_FIELDS:
        value = to_fhir_datetime(field_text(parsed.first(code), index))
        if value:
            return value
    return admit


def build_encounter(
    ctx: ConversionContext,
    pv1: Segment,
    pv2: Optional[Segment],
    parsed: ParsedMessage,
) -> str:
    """
    Encounter FR Core depuis PV1 (+ PV2).

    Returns:
        fullUrl de l'Encounter
    """
    encounter = new_resource("Encounter", PROFILE_ENCOUNTER)

    admit = to_fhir_datetime(field_text(pv1, 44))
    if admit is None:
        admit = to_fhir_datetime(field_text(parsed.first("EVN"), 6)) or to_fhir_datetime(field_text(parsed.first("EVN"), 2))
    discharge = to_fhir_datetime(field_text(pv1, 45))
    discharge_code = field_text(pv1, 36)

    encounter["status"] = encounter_status(ctx.event_type, discharge_code, discharge is not None)
    encounter["class"] = encounter_class(field_text(pv1, 2))
    encounter["subject"] = ctx.patient_reference

    visit = build_visit_identifier(get_field(pv1, 19))
    if visit:
        encounter["identifier"] = [visit]

    period = {}
    if admit:
        period["start"] = admit
    if discharge:
        period["end"] = discharge
    if period:
        encounter["period"] = period

    priority = ADMISSION_PRIORITY_MAP.get(field_text(pv1, 4).upper())
    if priority:
        encounter["priority"] = codeable_concept(CS_ACT_PRIORITY, priority[0], priority[1])

    hospital_service = field_text(pv1, 10)
    if hospital_service:
        encounter["serviceType"] = service_type(hospital_service)

    hospitalization: Dict = {}
    pre_admission = parse_cx_identifier(get_field(pv1, 5))
    if pre_admission.has_value:
        hospitalization["preAdmissionIdentifier"] = {"value": pre_admission.value}
    admit_source = field_text(pv1, 14)
    if admit_source:
        hospitalization["admitSource"] = codeable_concept(
            CS_V2_0023, admit_source, ADMIT_SOURCE_DISPLAY.get(admit_source)
        )
    if discharge_code:
        hospitalization["dischargeDisposition"] = codeable_concept(
            CS_V2_0112, discharge_code, DISCHARGE_DISPLAY.get(discharge_code)
        )
    if hospitalization:
        encounter["hospitalization"] = hospitalization

    if pv2 is not None:
        reason = component_text(get_field(pv2, 3), 1) or field_text(pv2, 3)
        if reason:
            encounter["reasonCode"] = [{"text": reason}]

    estimated = _estimated_discharge(parsed, admit)
    if estimated:
        add_extension(encounter, extension(EXT_ESTIMATED_DISCHARGE, valueDateTime=estimated))

    locations = []
    current = build_location(ctx, get_field(pv1, 3), role="location")
    if current is None:
        ctx.warn("PV1", 3, "lieu de prise en charge absent: Location par défaut")
        current = build_default_location(ctx, role="location")
    locations.append({
        "location": {"reference": current},
        "status": "completed" if encounter["status"] == "finished" else "active",
        "period": {"start": admit} if admit else None,
    })
    prior = build_location(ctx, get_field(pv1, 6))
    if prior:
        locations.append({"location": {"reference": prior}, "status": "completed"})
    encounter["location"] = locations

    organization = ctx.organization_reference
    if organization:
        encounter["serviceProvider"] = organization

    full_url = ctx.add(encounter, "encounter")

    for field_index, (code, display) in PARTICIPATION_BY_PV1_FIELD.items():
        for xcn in repetitions(get_field(pv1, field_index)):
            add_participant(ctx, encounter, xcn, code, display)

    logger.info(f"Encounter {encounter['status']} ({encounter['class']['code']})")
    return full_url


def add_participant(ctx: ConversionContext, encounter: Dict, xcn, code: str, display: str) -> Optional[str]:
    """Practitioner + PractitionerRole + Encounter.participant pour un XCN."""
    practitioner = build_practitioner(ctx, xcn)
    if practitioner is None:
        return None
    build_practitioner_role(ctx, practitioner, code, display)
    participant = {"type": [participant_type(code, display)], "individual": {"reference": practitioner}}
    participants = encounter.setdefault("participant", [])
    if participant not in participants:
        participants.append(participant)
    return practitioner


def add_role_participant(ctx: ConversionContext, rol: Segment) -> None:
    """ROL: rôle (ROL-3) d'un intervenant (ROL-4)."""
    role_code = field_text(rol, 3).upper()
    code, display = ROLE_PARTICIPATION_MAP.get(role_code, ("PART", "participation"))
    encounter = ctx.resource("encounter")
    persons = repetitions(get_field(rol, 4))
    if not persons:
        ctx.warn("ROL", 4, "ROL sans intervenant ignoré")
        return
    for xcn in persons:
        if encounter is not None:
            add_participant(ctx, encounter, xcn, code, display)
            continue
        practitioner = build_practitioner(ctx, xcn)
        if practitioner:
            build_practitioner_role(ctx, practitioner, code, display)
