"""Contrôle de forme FR Core d'un Bundle produit par le convertisseur.

Ce n'est pas une validation contre les StructureDefinitions: seules les règles
que le convertisseur est censé garantir sont vérifiées.

Contrôles Bundle:
- type connu; MessageHeader en première entrée pour un Bundle "message"
- fullUrl uniques; toute référence urn:uuid: résolue dans le Bundle

Contrôles ressources:
- Patient: profil FR Core, au moins un identifiant, extension de fiabilité d'identité,
  identifiant INS présent si le profil fr-core-patient-ins est déclaré
- Encounter: subject, status, class et au moins une location
- Practitioner: identifiant RPPS/ADELI sous l'OID praticien
- Coverage: beneficiary et payor; Appointment: au moins un participant;
  ServiceRequest: subject, status et intent
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterator, List

from frcore_bridge.config import BUNDLE_TYPES
from frcore_bridge.services.fhir_fr import (
    EXT_IDENTITY_RELIABILITY,
    FR_CORE_SD,
    PROFILE_PATIENT_INS,
    SYSTEM_PRACTITIONER,
    find_extension,
)
from frcore_bridge.services.identifier_manager import has_national_identifier


@dataclass
class ValidationIssue:
    code: str
    message: str
    severity: str = "error"  # error|warn|info
    location: str = ""       # ex: Patient/<id>


@dataclass
class ValidationResult:
    is_valid: bool
    level: str              # ok|warn|fail
    issues: List[ValidationIssue]

    def to_dict(self) -> Dict:
        return {
            "is_valid": self.is_valid,
            "level": self.level,
            "issues": [asdict(i) for i in self.issues],
        }

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]


def _references(value: Any) -> Iterator[str]:
    """Toutes les valeurs `reference` d'une structure FHIR."""
    if isinstance(value, dict):
        for key, item in value.items():
            if key == "reference" and isinstance(item, str):
                yield item
            else:
                yield from _references(item)
    elif isinstance(value, list):
        for item in value:
            yield from _references(item)


def _where(resource: Dict) -> str:
    return f"{resource.get('resourceType')}/{resource.get('id')}"


def _check_patient(patient: Dict, issues: List[ValidationIssue]) -> None:
    where = _where(patient)
    profiles = (patient.get("meta") or {}).get("profile") or []
    identifiers = patient.get("identifier") or []
    if not identifiers:
        issues.append(ValidationIssue("PATIENT_IDENTIFIER_MISSING", "Patient.identifier is required", location=where))
    if PROFILE_PATIENT_INS in profiles and not has_national_identifier(identifiers):
        issues.append(ValidationIssue(
            "PATIENT_INS_MISSING",
            "fr-core-patient-ins profile declared without an INS identifier",
            location=where,
        ))
    if find_extension(patient, EXT_IDENTITY_RELIABILITY) is None:
        issues.append(ValidationIssue(
            "PATIENT_RELIABILITY_MISSING",
            "identity reliability extension is expected on FR Core patients",
            severity="warn",
            location=where,
        ))
    if not patient.get("name"):
        issues.append(ValidationIssue("PATIENT_NAME_MISSING", "Patient.name is recommended", severity="warn", location=where))


def _check_encounter(encounter: Dict, issues: List[ValidationIssue]) -> None:
    where = _where(encounter)
    for element in ("status", "class", "subject"):
        if not encounter.get(element):
            issues.append(ValidationIssue(f"ENCOUNTER_{element.upper()}_MISSING", f"Encounter.{element} is required", location=where))
    if not encounter.get("location"):
        issues.append(ValidationIssue("ENCOUNTER_LOCATION_MISSING", "Encounter.location must contain at least one entry", location=where))


def _check_practitioner(practitioner: Dict, issues: List[ValidationIssue]) -> None:
    where = _where(practitioner)
    identifiers = practitioner.get("identifier") or []
    if not identifiers:
        issues.append(ValidationIssue("PRACTITIONER_IDENTIFIER_MISSING", "Practitioner without identifier", severity="warn", location=where))
    for identifier in identifiers:
        codes = {c.get("code") for c in ((identifier.get("type") or {}).get("coding") or [])}
        if codes & {"RPPS", "ADELI"} and identifier.get("system") != SYSTEM_PRACTITIONER:
            issues.append(ValidationIssue(
                "PRACTITIONER_SYSTEM_INVALID",
                f"RPPS/ADELI identifier must use {SYSTEM_PRACTITIONER}",
                location=where,
            ))


def _check_required(resource: Dict, elements: List[str], issues: List[ValidationIssue]) -> None:
    resource_type = resource.get("resourceType", "")
    for element in elements:
        if not resource.get(element):
            issues.append(ValidationIssue(
                f"{resource_type.upper()}_{element.upper()}_MISSING",
                f"{resource_type}.{element} is required",
                location=_where(resource),
            ))


def validate_bundle(bundle: Dict) -> ValidationResult:
    """
    Contrôle un Bundle (dict) produit par le convertisseur.

    Args:
        bundle: Document Bundle FHIR

    Returns:
        ValidationResult (level ok|warn|fail)
    """
    issues: List[ValidationIssue] = []
    entries = bundle.get("entry") or []

    if bundle.get("type") not in BUNDLE_TYPES:
        issues.append(ValidationIssue("BUNDLE_TYPE_INVALID", f"Bundle.type '{bundle.get('type')}' not supported"))
    if bundle.get("type") == "message":
        first = entries[0].get("resource", {}) if entries else {}
        if first.get("resourceType") != "MessageHeader":
            issues.append(ValidationIssue("MESSAGEHEADER_NOT_FIRST", "message Bundle must start with a MessageHeader"))

    full_urls = [entry.get("fullUrl") for entry in entries]
    if len(set(full_urls)) != len(full_urls):
        issues.append(ValidationIssue("FULLURL_DUPLICATE", "Bundle entries must have unique fullUrl"))
    known = set(full_urls)

    for entry in entries:
        resource = entry.get("resource") or {}
        resource_type = resource.get("resourceType")
        for ref in _references(resource):
            if ref.startswith("urn:uuid:") and ref not in known:
                issues.append(ValidationIssue("REFERENCE_UNRESOLVED", f"reference {ref} not found in Bundle", location=_where(resource)))

        profiles = (resource.get("meta") or {}).get("profile") or []
        if resource_type != "MessageHeader" and not any(p.startswith(FR_CORE_SD) for p in profiles):
            issues.append(ValidationIssue("PROFILE_MISSING", "FR Core profile expected in meta.profile", severity="info", location=_where(resource)))

        if resource_type == "Patient":
            _check_patient(resource, issues)
        elif resource_type == "Encounter":
            _check_encounter(resource, issues)
        elif resource_type == "Practitioner":
            _check_practitioner(resource, issues)
        elif resource_type == "Coverage":
            _check_required(resource, ["status", "beneficiary", "payor"], issues)
        elif resource_type == "Appointment":
            _check_required(resource, ["status", "participant"], issues)
        elif resource_type == "ServiceRequest":
            _check_required(resource, ["status", "intent", "subject"], issues)
        elif resource_type == "Observation":
            _check_required(resource, ["status", "code"], issues)

    # Determine overall level
    has_error = any(i.severity == "error" for i in issues)
    has_warn = any(i.severity == "warn" for i in issues)
    level = "fail" if has_error else ("warn" if has_warn else "ok")
    return ValidationResult(is_valid=not has_error, level=level, issues=issues)


__all__ = ["validate_bundle", "ValidationResult", "ValidationIssue"]
