"""
Construction des ressources FHIR FR Core partagées par les handlers

Contenu
- Patient (PID, PD1), Location (PL), Organization (HD / XON),
    Practitioner + PractitionerRole (XCN), RelatedPerson (NK1),
    Coverage + Organization payeur (IN1), Observation (OBX).
- Chaque builder ajoute la ressource au Bundle via le contexte et renvoie son fullUrl.

Notes
- Les praticiens sont dédoublonnés par identifiant (ou par nom à défaut): un même
    XCN cité dans PV1-7 et ROL-4 ne produit qu'un Practitioner.
"""
import logging
from typing import Dict, List, Optional

from frcore_bridge.models_hl7 import FieldValue, Segment
from frcore_bridge.services.address_resolver import birth_place_from_text, resolve_addresses
from frcore_bridge.services.bundle import ConversionContext
from frcore_bridge.services.code_tables import (
    CONTACT_RELATIONSHIP_MAP,
    DEFAULT_IDENTITY_RELIABILITY,
    GENDER_MAP,
    IDENTITY_RELIABILITY_CODES,
    MARITAL_STATUS_MAP,
    OBSERVATION_STATUS_MAP,
    SUBSCRIBER_RELATIONSHIP_MAP,
)
from frcore_bridge.services.fhir_fr import (
    CS_CONTACT_ROLE,
    CS_IDENTITY_RELIABILITY,
    CS_LOCATION_PHYSICAL_TYPE,
    CS_MARITAL_STATUS,
    CS_OBSERVATION_CATEGORY,
    CS_ORGANIZATION_TYPE,
    CS_PARTICIPATION_TYPE,
    CS_SUBSCRIBER_RELATIONSHIP,
    CS_V2_0074,
    EXT_COVERAGE_INSURED_ID,
    EXT_IDENTITY_RELIABILITY,
    EXT_MOTHERS_MAIDEN_NAME,
    PROFILE_COVERAGE,
    PROFILE_LOCATION,
    PROFILE_OBSERVATION,
    PROFILE_ORGANIZATION,
    PROFILE_PATIENT,
    PROFILE_PATIENT_INS,
    PROFILE_PRACTITIONER,
    PROFILE_PRACTITIONER_ROLE,
    PROFILE_RELATED_PERSON,
    add_extension,
    codeable_concept,
    coding,
    extension,
    new_resource,
)
from frcore_bridge.services.identifier_manager import (
    build_organization_identifier,
    classify_practitioner_identifier,
    has_national_identifier,
    resolve_patient_identifiers,
)
from frcore_bridge.services.name_resolver import name_display, parse_xcn_name, resolve_names
from frcore_bridge.services.telecom_resolver import resolve_patient_telecoms, resolve_telecoms
from frcore_bridge.utils.hl7_dates import to_fhir_date, to_fhir_datetime
from frcore_bridge.utils.hl7_fields import (
    component_text,
    field_text,
    get_field,
    repetitions,
)

logger = logging.getLogger(__name__)


# --- Patient ---

def _identity_reliability(pid: Segment) -> Dict:
    """PID-32 -> extension fr-core-identity-reliability (PROV par défaut)."""
    code = ""
    for repetition in repetitions(get_field(pid, 32)):
        candidate = component_text(repetition, 0).upper()
        if candidate in IDENTITY_RELIABILITY_CODES:
            code = candidate
            break
    code = code or DEFAULT_IDENTITY_RELIABILITY
    return extension(
        EXT_IDENTITY_RELIABILITY,
        extension=[
            extension(
                "identityStatus",
                valueCoding=coding(CS_IDENTITY_RELIABILITY, code, IDENTITY_RELIABILITY_CODES[code]),
            )
        ],
    )


def build_patient(ctx: ConversionContext, pid: Segment, role: str = "patient") -> str:
    """
    Patient FR Core depuis PID.

    Args:
        ctx: Contexte de conversion
        pid: Segment PID
        role: Rôle sous lequel enregistrer la ressource

    Returns:
        fullUrl du Patient
    """
    def warn(reason: str) -> None:
        ctx.warn("PID", 3, reason)

    identifiers = resolve_patient_identifiers(
        [get_field(pid, 3), get_field(pid, 2), get_field(pid, 4)],
        warn=warn,
    )
    is_ins = has_national_identifier(identifiers)
    patient = new_resource("Patient", PROFILE_PATIENT_INS if is_ins else PROFILE_PATIENT)
    patient["identifier"] = identifiers

    names = resolve_names(get_field(pid, 5), get_field(pid, 9))
    if names:
        patient["name"] = names
    else:
        ctx.warn("PID", 5, "aucun nom patient exploitable")

    gender = GENDER_MAP.get(field_text(pid, 8).upper())
    if gender:
        patient["gender"] = gender
    birth_date = to_fhir_date(field_text(pid, 7))
    if birth_date:
        patient["birthDate"] = birth_date
    elif field_text(pid, 7):
        ctx.warn("PID", 7, f"date de naissance illisible: {field_text(pid, 7)}")

    telecoms = resolve_patient_telecoms(get_field(pid, 13), get_field(pid, 14))
    if telecoms:
        patient["telecom"] = telecoms

    addresses, birth_place = resolve_addresses(get_field(pid, 11))
    if addresses:
        patient["address"] = addresses
    if birth_place is None:
        birth_place = birth_place_from_text(field_text(pid, 23))
    if birth_place:
        add_extension(patient, birth_place)

    marital = MARITAL_STATUS_MAP.get(field_text(pid, 16).upper())
    if marital:
        patient["maritalStatus"] = codeable_concept(CS_MARITAL_STATUS, marital[0], marital[1])

    multiple_birth = field_text(pid, 24).upper()
    birth_order = field_text(pid, 25)
    if birth_order.isdigit():
        patient["multipleBirthInteger"] = int(birth_order)
    elif multiple_birth in ("Y", "N"):
        patient["multipleBirthBoolean"] = multiple_birth == "Y"

    death_date = to_fhir_datetime(field_text(pid, 29))
    if death_date:
        patient["deceasedDateTime"] = death_date
    elif field_text(pid, 30).upper() in ("Y", "N"):
        patient["deceasedBoolean"] = field_text(pid, 30).upper() == "Y"

    mothers_maiden = field_text(pid, 6)
    if mothers_maiden:
        add_extension(patient, extension(EXT_MOTHERS_MAIDEN_NAME, valueString=mothers_maiden))

    add_extension(patient, _identity_reliability(pid))

    full_url = ctx.add(patient, role)
    logger.info(f"Patient créé ({'INS' if is_ins else 'sans INS'}): {len(identifiers)} identifiant(s)")
    return full_url


def apply_primary_care(ctx: ConversionContext, patient: Dict, pd1: Optional[Segment]) -> None:
    """PD1-4 (médecin traitant) -> Patient.generalPractitioner."""
    if pd1 is None:
        return
    for repetition in repetitions(get_field(pd1, 4)):
        full_url = build_practitioner(ctx, repetition)
        if full_url:
            patient.setdefault("generalPractitioner", []).append({"reference": full_url})


# --- Location ---

def build_location(ctx: ConversionContext, point_of_care: FieldValue, role: Optional[str] = None) -> Optional[str]:
    """
    Location depuis un PL: UF^CHAMBRE^LIT^ETABLISSEMENT^STATUT^TYPE^BATIMENT^ETAGE^DESCRIPTION.

    Returns:
        fullUrl de la Location, None si le champ est vide
    """
    unit = component_text(point_of_care, 0)
    room = component_text(point_of_care, 1)
    bed = component_text(point_of_care, 2)
    facility = component_text(point_of_care, 3)
    building = component_text(point_of_care, 6)
    floor = component_text(point_of_care, 7)
    description = component_text(point_of_care, 8)
    if not any((unit, room, bed, facility, building, description)):
        return None

    location = new_resource("Location", PROFILE_LOCATION)
    location["status"] = "active"
    location["mode"] = "instance"
    location["name"] = " / ".join(part for part in (unit, room, bed) if part) or facility or description
    if description:
        location["description"] = description
    identifier_value = "-".join(part for part in (facility, unit, room, bed) if part)
    if identifier_value:
        location["identifier"] = [{"use": "usual", "value": identifier_value}]

    if bed:
        physical = ("bd", "Bed")
    elif room:
        physical = ("ro", "Room")
    elif floor:
        physical = ("lvl", "Level")
    elif building:
        physical = ("bu", "Building")
    else:
        physical = ("wa", "Ward")
    location["physicalType"] = codeable_concept(CS_LOCATION_PHYSICAL_TYPE, physical[0], physical[1])

    organization = ctx.reference("organization")
    if organization:
        location["managingOrganization"] = organization
    return ctx.add(location, role)


def build_default_location(ctx: ConversionContext, role: Optional[str] = None) -> str:
    """Location synthétisée quand aucun lieu n'est transmis (référence obligatoire)."""
    location = new_resource("Location", PROFILE_LOCATION)
    location["status"] = "active"
    location["mode"] = "kind"
    location["name"] = "Lieu non précisé"
    location["physicalType"] = codeable_concept(CS_LOCATION_PHYSICAL_TYPE, "wa", "Ward")
    organization = ctx.reference("organization")
    if organization:
        location["managingOrganization"] = organization
    return ctx.add(location, role)


# --- Organization ---

def build_organization(
    ctx: ConversionContext,
    name: str,
    code: str = "",
    universal_id: str = "",
    role: Optional[str] = None,
    type_code: str = "prov",
) -> Optional[str]:
    """Organization FR Core (établissement, UF, organisme payeur)."""
    if not (name or code or universal_id):
        return None
    organization = new_resource("Organization", PROFILE_ORGANIZATION)
    organization["active"] = True
    identifier = build_organization_identifier(code or name, universal_id)
    if identifier:
        organization["identifier"] = [identifier]
    organization["name"] = name or code or universal_id
    display = {"prov": "Healthcare Provider", "ins": "Insurance Company", "dept": "Hospital Department"}
    organization["type"] = [codeable_concept(CS_ORGANIZATION_TYPE, type_code, display.get(type_code))]
    return ctx.add(organization, role)


def build_organization_from_hd(ctx: ConversionContext, value: FieldValue, role: Optional[str] = None) -> Optional[str]:
    """HD: NAMESPACE^IDENTIFIANT UNIVERSEL^TYPE (MSH-4, MSH-6)."""
    namespace = component_text(value, 0)
    universal_id = component_text(value, 1)
    return build_organization(ctx, namespace, namespace, universal_id, role)


# --- Practitioner / PractitionerRole ---

def _practitioner_key(identifier: Optional[Dict], name: Optional[Dict]) -> Optional[str]:
    if identifier:
        return f"practitioner:{identifier.get('system')}|{identifier['value']}"
    display = name_display(name)
    return f"practitioner:name|{display.upper()}" if display else None


def build_practitioner(ctx: ConversionContext, xcn: FieldValue) -> Optional[str]:
    """
    Practitioner depuis un XCN (ID^NOM^PRENOM^...^AUTORITE(9)^...^TYPE ID(13)).

    Un praticien déjà présent dans le Bundle (même identifiant ou même nom) est réutilisé.

    Returns:
        fullUrl du Practitioner, None si le XCN est vide
    """
    identifier = classify_practitioner_identifier(
        component_text(xcn, 0),
        id_type=component_text(xcn, 12),
        authority=component_text(xcn, 8),
    )
    name = parse_xcn_name(xcn)
    key = _practitioner_key(identifier, name)
    if key is None:
        return None
    existing = ctx.full_url(key)
    if existing:
        return existing

    practitioner = new_resource("Practitioner", PROFILE_PRACTITIONER)
    practitioner["active"] = True
    if identifier:
        practitioner["identifier"] = [identifier]
    if name:
        practitioner["name"] = [name]
    full_url = ctx.add(practitioner, key)
    ctx.register("practitioner", full_url)
    return full_url


def build_practitioner_role(
    ctx: ConversionContext,
    practitioner_url: str,
    code: str,
    display: str,
    system: str = CS_PARTICIPATION_TYPE,
) -> str:
    """PractitionerRole liant un praticien, l'établissement et sa fonction."""
    key = f"practitioner-role:{practitioner_url}|{code}"
    existing = ctx.full_url(key)
    if existing:
        return existing
    role = new_resource("PractitionerRole", PROFILE_PRACTITIONER_ROLE)
    role["active"] = True
    role["practitioner"] = {"reference": practitioner_url}
    organization = ctx.reference("organization")
    if organization:
        role["organization"] = organization
    role["code"] = [codeable_concept(system, code, display)]
    location = ctx.reference("location")
    if location:
        role["location"] = [location]
    return ctx.add(role, key)


# --- RelatedPerson (NK1) ---

def build_related_person(ctx: ConversionContext, nk1: Segment) -> Optional[str]:
    """RelatedPerson depuis NK1 (nom, lien, adresse, téléphones, période)."""
    patient = ctx.patient_reference
    if patient is None:
        ctx.warn("NK1", 0, "NK1 ignoré: aucun patient")
        return None
    names = resolve_names(get_field(nk1, 2))
    if not names:
        ctx.warn("NK1", 2, "NK1 sans nom ignoré")
        return None

    related = new_resource("RelatedPerson", PROFILE_RELATED_PERSON)
    related["active"] = True
    related["patient"] = patient
    related["name"] = names

    relationship = component_text(get_field(nk1, 3), 0).upper()
    relationships = []
    if relationship:
        relationships.append(codeable_concept(
            CS_CONTACT_ROLE,
            CONTACT_RELATIONSHIP_MAP.get(relationship, relationship),
            component_text(get_field(nk1, 3), 1) or None,
        ))
    contact_role = component_text(get_field(nk1, 7), 0).upper()
    if contact_role:
        relationships.append(codeable_concept(
            CS_CONTACT_ROLE,
            CONTACT_RELATIONSHIP_MAP.get(contact_role, contact_role),
            component_text(get_field(nk1, 7), 1) or None,
        ))
    if relationships:
        related["relationship"] = relationships

    addresses, _ = resolve_addresses(get_field(nk1, 4))
    if addresses:
        related["address"] = addresses
    telecoms = resolve_telecoms(get_field(nk1, 5), "home") + resolve_telecoms(get_field(nk1, 6), "work")
    if telecoms:
        related["telecom"] = telecoms

    period = {"start": to_fhir_date(field_text(nk1, 8)), "end": to_fhir_date(field_text(nk1, 9))}
    if period["start"] or period["end"]:
        related["period"] = {key: value for key, value in period.items() if value}
    return ctx.add(related)


# --- Coverage (IN1) ---

def build_coverage(ctx: ConversionContext, in1: Segment, role: Optional[str] = None) -> Optional[str]:
    """
    Coverage + Organization payeur depuis IN1.

    IN1-2 plan, IN1-3/4 organisme, IN1-12/13 période, IN1-15 type de plan,
    IN1-17 lien assuré, IN1-36 numéro de police, IN1-49 identifiant de l'assuré.
    """
    if ctx.patient_reference is None:
        ctx.warn("IN1", 0, "IN1 ignoré: aucun patient")
        return None

    company_id = field_text(in1, 3)
    company_name = component_text(get_field(in1, 4), 0)
    payer_url = build_organization(
        ctx,
        company_name,
        company_id,
        field_text(in1, 3, 3, 1),
        role="payer",
        type_code="ins",
    )

    coverage = new_resource("Coverage", PROFILE_COVERAGE)
    coverage["status"] = "active"
    coverage["beneficiary"] = ctx.patient_reference
    coverage["payor"] = [{"reference": payer_url}] if payer_url else [ctx.patient_reference]

    plan_type = field_text(in1, 15) or field_text(in1, 2)
    lookup = ctx.terminology.lookup_coverage_type(plan_type) if ctx.terminology else None
    if lookup:
        coverage["type"] = {"coding": [lookup]}
    elif plan_type:
        coverage["type"] = {"text": plan_type}

    plan_id = field_text(in1, 2)
    if plan_id:
        coverage["class"] = [{
            "type": codeable_concept("http://terminology.hl7.org/CodeSystem/coverage-class", "plan"),
            "value": plan_id,
            "name": component_text(get_field(in1, 2), 1) or None,
        }]
    group = field_text(in1, 8)
    if group:
        coverage.setdefault("class", []).append({
            "type": codeable_concept("http://terminology.hl7.org/CodeSystem/coverage-class", "group"),
            "value": group,
        })

    policy = field_text(in1, 36)
    if policy:
        coverage["identifier"] = [{"use": "official", "value": policy}]
        coverage["subscriberId"] = policy

    start, end = to_fhir_date(field_text(in1, 12)), to_fhir_date(field_text(in1, 13))
    if start or end:
        coverage["period"] = {key: value for key, value in (("start", start), ("end", end)) if value}

    relationship = SUBSCRIBER_RELATIONSHIP_MAP.get(field_text(in1, 17).upper())
    if relationship:
        coverage["relationship"] = codeable_concept(CS_SUBSCRIBER_RELATIONSHIP, relationship)
        if relationship == "self":
            coverage["subscriber"] = ctx.patient_reference

    insured_id = field_text(in1, 49)
    if insured_id:
        add_extension(coverage, extension(EXT_COVERAGE_INSURED_ID, valueIdentifier={"value": insured_id}))

    return ctx.add(coverage, role)


# --- Observation (OBX) ---

def _observation_value(obx: Segment) -> Dict:
    """OBX-2 (type) + OBX-5 (valeur) + OBX-6 (unité) -> value[x]."""
    value_type = field_text(obx, 2).upper()
    raw_value = field_text(obx, 5)
    unit = field_text(obx, 6)
    if not raw_value:
        return {}
    if value_type in ("NM", "SN"):
        try:
            quantity: Dict = {"value": float(raw_value) if "." in raw_value else int(raw_value)}
        except ValueError:
            return {"valueString": raw_value}
        if unit:
            quantity.update({"unit": unit, "system": "http://unitsofmeasure.org", "code": unit})
        return {"valueQuantity": quantity}
    if value_type in ("CE", "CWE", "CNE"):
        obx5 = get_field(obx, 5)
        return {"valueCodeableConcept": codeable_concept(
            component_text(obx5, 2) or None,
            component_text(obx5, 0),
            component_text(obx5, 1) or None,
        )}
    if value_type in ("DT", "DTM", "TS"):
        converted = to_fhir_datetime(raw_value)
        if converted:
            return {"valueDateTime": converted}
    return {"valueString": raw_value}


def build_observation(ctx: ConversionContext, obx: Segment, based_on: Optional[str] = None) -> Optional[str]:
    """Observation depuis OBX (code OBX-3, valeur OBX-5, statut OBX-11, date OBX-14)."""
    code_field = get_field(obx, 3)
    code, label = component_text(code_field, 0), component_text(code_field, 1)
    if not code and not label:
        ctx.warn("OBX", 3, "OBX sans identifiant d'observation ignoré")
        return None

    observation = new_resource("Observation", PROFILE_OBSERVATION)
    observation["status"] = OBSERVATION_STATUS_MAP.get(field_text(obx, 11).upper(), "final")
    category = "laboratory" if based_on else "survey"
    observation["category"] = [codeable_concept(CS_OBSERVATION_CATEGORY, category)]
    observation["code"] = codeable_concept(component_text(code_field, 2) or None, code, label or None, text=label or None)
    observation.update(_observation_value(obx))
    if not any(key.startswith("value") for key in observation):
        observation["dataAbsentReason"] = codeable_concept(
            "http://terminology.hl7.org/CodeSystem/data-absent-reason", "unknown", "Unknown"
        )

    abnormal = field_text(obx, 8)
    if abnormal:
        observation["interpretation"] = [codeable_concept(
            "http://terminology.hl7.org/CodeSystem/v3-ObservationInterpretation", abnormal
        )]
    reference_range = field_text(obx, 7)
    if reference_range:
        observation["referenceRange"] = [{"text": reference_range}]
    effective = to_fhir_datetime(field_text(obx, 14))
    if effective:
        observation["effectiveDateTime"] = effective

    if ctx.patient_reference:
        observation["subject"] = ctx.patient_reference
    if ctx.encounter_reference:
        observation["encounter"] = ctx.encounter_reference
    if based_on:
        observation["basedOn"] = [{"reference": based_on}]
    return ctx.add(observation)


def build_observations(ctx: ConversionContext, segments: List[Segment], based_on: Optional[str] = None) -> List[str]:
    urls = []
    for obx in segments:
        full_url = build_observation(ctx, obx, based_on)
        if full_url:
            urls.append(full_url)
    return urls


def participant_type(code: str, display: str) -> Dict:
    return codeable_concept(CS_PARTICIPATION_TYPE, code, display)


def service_type(code: str, display: Optional[str] = None) -> Optional[Dict]:
    """Concept de service (UF, spécialité) en table HL7 0074."""
    return codeable_concept(CS_V2_0074, code, display) if code else None


def build_header_organizations(ctx: ConversionContext, header: Segment) -> None:
    """
    Établissements émetteur (MSH-4) et destinataire (MSH-6), liés au MessageHeader
    (sender / destination.receiver).
    """
    sender = build_organization_from_hd(ctx, get_field(header, 3), role="organization")
    receiver = build_organization_from_hd(ctx, get_field(header, 5), role="receiving_organization")
    message_header = ctx.resource("message_header")
    if message_header is None:
        return
    if sender:
        message_header["sender"] = {"reference": sender}
    if receiver:
        destinations = message_header.setdefault("destination", [{"endpoint": "urn:hl7v2:unknown"}])
        destinations[0]["receiver"] = {"reference": receiver}
