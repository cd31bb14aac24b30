"""
Enrichissement FR Core par les segments Z (IHE PAM France)

Segments traités (chacun optionnel):
- ZBE : mouvement (identifiant, date, action, historique, évènement d'origine),
        UF responsable (ZBE-7) et mode de traitement (ZBE-9)
- ZFP : activité / catégorie socioprofessionnelle du patient
- ZFV : établissement de provenance, date du dernier séjour, mode de transport
        (la date de sortie prévue ZFV-6 est lue par le handler ADT)
- ZFM : modes d'entrée / sortie et provenance / destination PMSI
- ZFD : mode d'obtention de l'identité, consentement SMS
- ZFI : indicateur de prise en charge à 100 % (couverture)

Notes
- Les ressources enrichies sont celles enregistrées sous un rôle dans le contexte
    ("patient", "encounter", "coverage"), jamais "la première ressource d'un type".
- Un segment Z sans ressource cible produit un avertissement et est ignoré.
"""
import logging
from typing import Dict, Optional

from frcore_bridge.models_hl7 import ParsedMessage, Segment
from frcore_bridge.services.bundle import ConversionContext
from frcore_bridge.services.fhir_fr import (
    CS_ADMISSION_FR,
    CS_DISCHARGE_FR,
    EXT_CARE_MODE,
    EXT_FULL_COVERAGE,
    EXT_IDENTITY_METHOD,
    EXT_LAST_STAY_DATE,
    EXT_MOVEMENT,
    EXT_PMSI_DESTINATION,
    EXT_PMSI_ORIGIN,
    EXT_PROFESSION,
    EXT_SMS_CONSENT,
    EXT_TRANSPORT_MODE,
    add_extension,
    codeable_concept,
    coding,
    extension,
)
from frcore_bridge.services.resource_builders import build_organization, service_type
from frcore_bridge.utils.hl7_dates import to_fhir_date, to_fhir_datetime
from frcore_bridge.utils.hl7_fields import component_text, field_text, get_field

logger = logging.getLogger(__name__)

MOVEMENT_ACTIONS = {"INSERT", "UPDATE", "CANCEL"}
YES_VALUES = {"Y", "O", "1", "TRUE", "OUI"}
NO_VALUES = {"N", "0", "FALSE", "NON"}


def _flag(value: str) -> Optional[bool]:
    value = value.strip().upper()
    if value in YES_VALUES:
        return True
    if value in NO_VALUES:
        return False
    return None


def _target(ctx: ConversionContext, role: str, segment: str) -> Optional[Dict]:
    resource = ctx.resource(role)
    if resource is None:
        ctx.warn(segment, 0, f"{segment} ignoré: aucune ressource '{role}' à enrichir")
    return resource


# --- ZBE ---

def apply_zbe(ctx: ConversionContext, zbe: Segment) -> None:
    """
    ZBE-1 identifiant du mouvement, ZBE-2 date, ZBE-4 action, ZBE-5 indicateur
    historique, ZBE-6 évènement d'origine, ZBE-7 UF responsable, ZBE-9 mode de traitement.
    """
    encounter = _target(ctx, "encounter", "ZBE")
    if encounter is None:
        return

    movement_id = field_text(zbe, 1)
    movement_date = to_fhir_datetime(field_text(zbe, 2))
    action = field_text(zbe, 4).upper()
    if action and action not in MOVEMENT_ACTIONS:
        ctx.warn("ZBE", 4, f"action de mouvement inconnue: {action}")
    historic = _flag(field_text(zbe, 5))
    original_event = field_text(zbe, 6).upper()
    movement_event = original_event or ctx.event_type

    terminology = ctx.terminology
    movement_display = terminology.lookup_movement_type(movement_event) if terminology else None

    parts = []
    if movement_id:
        identifier = {"value": movement_id}
        authority_oid = field_text(zbe, 1, 2)
        if authority_oid:
            identifier["system"] = f"urn:oid:{authority_oid}"
        parts.append(extension("identifier", valueIdentifier=identifier))
    if movement_date:
        parts.append(extension("startDate", valueDateTime=movement_date))
    if action:
        parts.append(extension("action", valueCode=action.lower()))
    if historic is not None:
        parts.append(extension("historic", valueBoolean=historic))
    if original_event:
        parts.append(extension("originalEvent", valueCode=original_event))
    parts.append(extension(
        "movementType",
        valueCoding=coding("urn:ihe:pam:fr:movement-type", movement_event, movement_display),
    ))
    add_extension(encounter, extension(EXT_MOVEMENT, extension=parts))

    # ZBE-7: XON, code de l'UF en XON-10, libellé en XON-1
    zbe7 = get_field(zbe, 7)
    unit_code = component_text(zbe7, 9) or component_text(zbe7, 0)
    unit_label = component_text(zbe7, 0)
    if unit_code:
        unit_url = build_organization(
            ctx,
            unit_label or unit_code,
            unit_code,
            role="functional_unit",
            type_code="dept",
        )
        unit = ctx.resource("functional_unit") if unit_url else None
        parent = ctx.organization_reference
        if unit is not None and parent is not None:
            unit["partOf"] = parent
        encounter["serviceProvider"] = {"reference": unit_url, "display": unit_label or unit_code}
        if not encounter.get("serviceType"):
            encounter["serviceType"] = service_type(unit_code, unit_label or None)

    care_mode_code = field_text(zbe, 9)
    if care_mode_code:
        care_mode = terminology.lookup_care_mode(care_mode_code) if terminology else None
        if care_mode is None:
            ctx.warn("ZBE", 9, f"mode de traitement inconnu: {care_mode_code}")
            care_mode = {"code": care_mode_code}
        add_extension(encounter, extension(EXT_CARE_MODE, valueCodeableConcept={"coding": [care_mode]}))


# --- ZFP ---

def apply_zfp(ctx: ConversionContext, zfp: Segment) -> None:
    """ZFP-1 activité socioprofessionnelle, ZFP-2 catégorie socioprofessionnelle."""
    patient = _target(ctx, "patient", "ZFP")
    if patient is None:
        return
    activity = field_text(zfp, 1)
    category = field_text(zfp, 2)
    if not activity and not category:
        return
    parts = []
    if activity:
        parts.append(extension("activity", valueCodeableConcept=codeable_concept(
            "https://mos.esante.gouv.fr/NOS/TRE_R232-ActiviteProfessionnelle", activity,
            component_text(get_field(zfp, 1), 1) or None,
        )))
    if category:
        parts.append(extension("category", valueCodeableConcept=codeable_concept(
            "https://mos.esante.gouv.fr/NOS/TRE_R96-CategorieSocioprofessionnelle", category,
            component_text(get_field(zfp, 2), 1) or None,
        )))
    add_extension(patient, extension(EXT_PROFESSION, extension=parts))


# --- ZFV ---

def apply_zfv(ctx: ConversionContext, zfv: Segment) -> None:
    """
    ZFV-1 établissement de provenance, ZFV-2 date du dernier séjour,
    ZFV-3 mode de transport. ZFV-6 (sortie prévue) est lu à la construction
    de l'Encounter, après PV2-9.
    """
    encounter = _target(ctx, "encounter", "ZFV")
    if encounter is None:
        return
    hospitalization = encounter.setdefault("hospitalization", {})

    origin_code = field_text(zfv, 1)
    if origin_code:
        origin_url = build_organization(ctx, origin_code, universal_id=origin_code, role="origin_organization")
        if origin_url:
            hospitalization["origin"] = {"reference": origin_url}

    last_stay = to_fhir_date(field_text(zfv, 2))
    if last_stay:
        add_extension(encounter, extension(EXT_LAST_STAY_DATE, valueDate=last_stay))

    transport = field_text(zfv, 3)
    if transport:
        add_extension(encounter, extension(
            EXT_TRANSPORT_MODE,
            valueCodeableConcept=codeable_concept(
                "https://mos.esante.gouv.fr/NOS/TRE_R213-ModeTransport", transport,
                component_text(get_field(zfv, 3), 1) or None,
            ),
        ))

    if not hospitalization:
        encounter.pop("hospitalization")


# --- ZFM ---

def _pmsi_concept(ctx: ConversionContext, system_name: str, code: str) -> Optional[Dict]:
    terminology = ctx.terminology
    found = terminology.coding(system_name, code) if terminology else None
    return {"coding": [found]} if found else {"text": code}


def apply_zfm(ctx: ConversionContext, zfm: Segment) -> None:
    """
    ZFM-1 mode d'entrée PMSI, ZFM-2 mode de sortie PMSI,
    ZFM-3 provenance PMSI, ZFM-4 destination PMSI.
    """
    encounter = _target(ctx, "encounter", "ZFM")
    if encounter is None:
        return
    terminology = ctx.terminology
    hospitalization = encounter.setdefault("hospitalization", {})

    entry_mode = field_text(zfm, 1)
    if entry_mode:
        admission = terminology.translate("pmsi-mode-entree", entry_mode) if terminology else None
        if admission:
            hospitalization["admitSource"] = {"coding": [admission]}
        else:
            ctx.warn("ZFM", 1, f"mode d'entrée PMSI inconnu: {entry_mode}")
            hospitalization["admitSource"] = codeable_concept(CS_ADMISSION_FR, None, text=entry_mode)

    exit_mode = field_text(zfm, 2)
    if exit_mode:
        disposition = terminology.translate("pmsi-mode-sortie", exit_mode) if terminology else None
        if disposition:
            hospitalization["dischargeDisposition"] = {"coding": [disposition]}
        else:
            ctx.warn("ZFM", 2, f"mode de sortie PMSI inconnu: {exit_mode}")
            hospitalization["dischargeDisposition"] = codeable_concept(CS_DISCHARGE_FR, None, text=exit_mode)

    origin = field_text(zfm, 3)
    if origin:
        add_extension(hospitalization, extension(
            EXT_PMSI_ORIGIN, valueCodeableConcept=_pmsi_concept(ctx, "pmsi-provenance", origin)
        ))
    destination = field_text(zfm, 4)
    if destination:
        add_extension(hospitalization, extension(
            EXT_PMSI_DESTINATION, valueCodeableConcept=_pmsi_concept(ctx, "pmsi-destination", destination)
        ))

    if not hospitalization:
        encounter.pop("hospitalization")


# --- ZFD ---

def apply_zfd(ctx: ConversionContext, zfd: Segment) -> None:
    """ZFD-3 consentement SMS (O/N), ZFD-7 mode d'obtention de l'identité."""
    patient = _target(ctx, "patient", "ZFD")
    if patient is None:
        return
    sms_consent = _flag(field_text(zfd, 3))
    if sms_consent is not None:
        add_extension(patient, extension(EXT_SMS_CONSENT, valueBoolean=sms_consent))
    elif field_text(zfd, 3):
        ctx.warn("ZFD", 3, f"consentement SMS illisible: {field_text(zfd, 3)}")

    identity_method = field_text(zfd, 7)
    if identity_method:
        add_extension(patient, extension(
            EXT_IDENTITY_METHOD,
            valueCodeableConcept=codeable_concept(
                "https://mos.esante.gouv.fr/NOS/TRE_R338-ModaliteAccueil", identity_method,
                component_text(get_field(zfd, 7), 1) or None,
            ),
        ))


# --- ZFI ---

def apply_zfi(ctx: ConversionContext, zfi: Segment) -> None:
    """ZFI-1 prise en charge à 100 % (O/N), ZFI-2 motif, ZFI-3 date de fin."""
    coverage = _target(ctx, "coverage", "ZFI")
    if coverage is None:
        return
    full = _flag(field_text(zfi, 1))
    if full is None:
        ctx.warn("ZFI", 1, f"indicateur de prise en charge illisible: {field_text(zfi, 1)!r}")
        return
    parts = [extension("indicator", valueBoolean=full)]
    reason = field_text(zfi, 2)
    if reason:
        parts.append(extension("reason", valueString=component_text(get_field(zfi, 2), 1) or reason))
    end = to_fhir_date(field_text(zfi, 3))
    if end:
        parts.append(extension("end", valueDate=end))
    add_extension(coverage, extension(EXT_FULL_COVERAGE, extension=parts))


Z_SEGMENT_HANDLERS = {
    "ZBE": apply_zbe,
    "ZFP": apply_zfp,
    "ZFV": apply_zfv,
    "ZFM": apply_zfm,
    "ZFD": apply_zfd,
    "ZFI": apply_zfi,
}


def apply_french_extensions(parsed: ParsedMessage, ctx: ConversionContext) -> int:
    """
    Applique les segments Z présents aux ressources du contexte.

    Returns:
        Nombre de segments Z traités
    """
    applied = 0
    for code, handler in Z_SEGMENT_HANDLERS.items():
        segment = parsed.first(code)
        if segment is None:
            continue
        handler(ctx, segment)
        applied += 1
    ignored = [code for code in parsed.segment_codes() if code.startswith("Z") and code not in Z_SEGMENT_HANDLERS]
    for code in ignored:
        ctx.warn(code, 0, "segment Z non pris en charge ignoré")
    logger.info(f"Enrichissement FR: {applied} segment(s) Z appliqué(s)")
    return applied
