"""
Handler ORM (demandes d'examen) : PID / ORC / OBR / OBX -> ServiceRequest FR Core

Notes
- Un ServiceRequest par OBR, associé à l'ORC de même rang (ou au premier ORC).
- Les OBX qui suivent un OBR produisent des Observations liées (basedOn) à sa demande.
- Les NTE qui suivent un OBR (ou un OBX) deviennent des notes de la demande (ou du résultat).
- Un BLG s'applique à la demande en cours (extension de facturation).
- PV1 éventuel: Encounter, référencé par les demandes.
"""
import logging
from typing import Dict, List, Optional

from frcore_bridge.models_hl7 import ParsedMessage, Segment
from frcore_bridge.services.adt_handler import build_encounter
from frcore_bridge.services.bundle import ConversionContext
from frcore_bridge.services.code_tables import DEFAULT_ORDER_STATUS, ORDER_PRIORITY_MAP, ORDER_STATUS_MAP
from frcore_bridge.services.fhir_fr import (
    CS_V2_0070,
    CS_V2_0203,
    EXT_SERVICE_REQUEST_BILLING,
    PROFILE_SERVICE_REQUEST,
    add_extension,
    codeable_concept,
    extension,
    new_resource,
)
from frcore_bridge.services.resource_builders import (
    build_header_organizations,
    build_observation,
    build_patient,
    build_practitioner,
)
from frcore_bridge.utils.hl7_dates import to_fhir_datetime
from frcore_bridge.utils.hl7_fields import component_text, field_text, get_field, repetitions

logger = logging.getLogger(__name__)

DEFAULT_ORDER_PRIORITY = "routine"


def order_status(orc: Optional[Segment]) -> str:
    """ORC-5 (statut), sinon ORC-1 (code de contrôle), sinon "active"."""
    for index in (5, 1):
        code = field_text(orc, index).upper()
        if code in ORDER_STATUS_MAP:
            return ORDER_STATUS_MAP[code]
    return DEFAULT_ORDER_STATUS


def order_priority(obr: Segment, orc: Optional[Segment]) -> str:
    """OBR-5, sinon OBR-27.6, sinon ORC-7.6 (TQ priorité)."""
    candidates = (field_text(obr, 5), field_text(obr, 27, 5), field_text(orc, 7, 5))
    for code in candidates:
        if code.upper() in ORDER_PRIORITY_MAP:
            return ORDER_PRIORITY_MAP[code.upper()]
    return DEFAULT_ORDER_PRIORITY


def _order_identifiers(obr: Segment, orc: Optional[Segment]) -> List[Dict]:
    identifiers = []
    for code, display, value in (
        ("PLAC", "Placer Identifier", field_text(obr, 2) or field_text(orc, 2)),
        ("FILL", "Filler Identifier", field_text(obr, 3) or field_text(orc, 3)),
    ):
        if value:
            identifiers.append({"type": codeable_concept(CS_V2_0203, code, display), "value": value})
    return identifiers


def build_service_request(ctx: ConversionContext, obr: Segment, orc: Optional[Segment]) -> Optional[str]:
    """
    ServiceRequest depuis OBR (+ ORC associé).

    Returns:
        fullUrl du ServiceRequest, None si aucun patient
    """
    if ctx.patient_reference is None:
        ctx.warn("OBR", 0, "ServiceRequest non produit: aucun patient")
        return None

    service = get_field(obr, 4)
    code, label = component_text(service, 0), component_text(service, 1)
    if not code and not label:
        ctx.warn("OBR", 4, "OBR sans prestation demandée")

    request = new_resource("ServiceRequest", PROFILE_SERVICE_REQUEST)
    request["identifier"] = _order_identifiers(obr, orc)
    request["status"] = order_status(orc)
    request["intent"] = "order"
    request["priority"] = order_priority(obr, orc)
    request["code"] = codeable_concept(component_text(service, 2) or None, code, label or None, text=label or None)
    request["subject"] = ctx.patient_reference

    occurrence = to_fhir_datetime(field_text(obr, 6)) or to_fhir_datetime(field_text(obr, 7))
    if occurrence:
        request["occurrenceDateTime"] = occurrence
    authored = to_fhir_datetime(field_text(orc, 9))
    if authored:
        request["authoredOn"] = authored

    requester = None
    for xcn in repetitions(get_field(orc, 12)) + repetitions(get_field(obr, 16)):
        requester = build_practitioner(ctx, xcn)
        if requester:
            break
    if requester:
        request["requester"] = {"reference": requester}
    else:
        ctx.warn("ORC", 12, "demande sans prescripteur")

    clinical_info = field_text(obr, 13)
    if clinical_info:
        request["note"] = [{"text": clinical_info}]
    reason = component_text(get_field(obr, 31), 1) or field_text(obr, 31)
    if reason:
        request["reasonCode"] = [{"text": reason}]

    # OBR-15 SPS: nature du prélèvement (table 0070) ^ libellé
    specimen = get_field(obr, 15)
    specimen_code, specimen_label = component_text(specimen, 0), component_text(specimen, 1)
    if specimen_code or specimen_label:
        request["bodySite"] = [codeable_concept(
            CS_V2_0070 if specimen_code else None,
            specimen_code,
            specimen_label or None,
            text=specimen_label or None,
        )]

    if ctx.encounter_reference:
        request["encounter"] = ctx.encounter_reference
    if ctx.organization_reference:
        request["performer"] = [ctx.organization_reference]

    return ctx.add(request, "service_request")


def _note_text(nte: Segment) -> str:
    """NTE-3 (commentaire, répétable) en un seul texte."""
    return "\n".join(text for text in (component_text(rep, 0) for rep in repetitions(get_field(nte, 3))) if text)


def add_note(ctx: ConversionContext, target: Optional[Dict], nte: Segment) -> None:
    comment = _note_text(nte)
    if not comment:
        return
    if target is None:
        ctx.warn("NTE", 3, "commentaire sans demande ni résultat ignoré")
        return
    target.setdefault("note", []).append({"text": comment})


def apply_billing(ctx: ConversionContext, request: Optional[Dict], blg: Segment) -> None:
    """BLG-1 (moment de facturation) -> extension de facturation de la demande."""
    charge = field_text(blg, 1)
    if not charge:
        return
    if request is None:
        ctx.warn("BLG", 1, "facturation sans demande ignorée")
        return
    add_extension(request, extension(EXT_SERVICE_REQUEST_BILLING, valueString=charge))


def handle_orm_message(parsed: ParsedMessage, ctx: ConversionContext) -> None:
    """
    Construit Patient, ServiceRequest(s), Observation(s), Practitioner et Organization.

    Args:
        parsed: Message HL7 parsé
        ctx: Contexte de conversion
    """
    pid = parsed.first("PID")
    if pid is not None:
        build_patient(ctx, pid)
        ctx.add_focus("patient")
    else:
        ctx.warn("PID", 0, "segment PID absent: demandes non produites")

    build_header_organizations(ctx, parsed.header)

    pv1 = parsed.first("PV1")
    if pv1 is not None and ctx.patient_reference is not None:
        build_encounter(ctx, pv1, parsed.first("PV2"), parsed)

    orcs = parsed.all("ORC")
    if not parsed.has("OBR"):
        ctx.warn("OBR", 0, "aucun segment OBR: aucune demande produite")

    obr_rank = 0
    current_request: Optional[str] = None
    note_target: Optional[Dict] = None
    requests: List[str] = []
    for code, segment in parsed.in_order():
        if code == "OBR":
            orc = orcs[obr_rank] if obr_rank < len(orcs) else (orcs[0] if orcs else None)
            current_request = build_service_request(ctx, segment, orc)
            if current_request:
                requests.append(current_request)
            note_target = ctx.bundle.find(current_request)
            obr_rank += 1
        elif code == "OBX":
            observation = build_observation(ctx, segment, based_on=current_request)
            if observation:
                note_target = ctx.bundle.find(observation)
        elif code == "NTE":
            add_note(ctx, note_target, segment)
        elif code == "BLG":
            apply_billing(ctx, ctx.bundle.find(current_request), segment)

    message_header = ctx.resource("message_header")
    if message_header is not None:
        for full_url in requests:
            message_header.setdefault("focus", []).append({"reference": full_url})
    logger.info(f"ORM^{ctx.event_type}: {len(requests)} ServiceRequest(s)")
