"""
Constantes FR Core et petits constructeurs de structures FHIR (dict).

Contenu
- Profils FR Core, systèmes d'identifiants (OID) et systèmes de codes utilisés
    par les handlers.
- Helpers `coding`, `codeable_concept`, `reference`, `extension`, `new_resource`.
- `clean_empty`: suppression récursive des valeurs vides avant sérialisation.
"""
import uuid
from typing import Any, Dict, List, Optional

FR_CORE = "https://hl7.fr/ig/fhir/core"
FR_CORE_SD = f"{FR_CORE}/StructureDefinition"
FR_CORE_CS = f"{FR_CORE}/CodeSystem"

PROFILE_PATIENT = f"{FR_CORE_SD}/fr-core-patient"
PROFILE_PATIENT_INS = f"{FR_CORE_SD}/fr-core-patient-ins"
PROFILE_ENCOUNTER = f"{FR_CORE_SD}/fr-core-encounter"
PROFILE_LOCATION = f"{FR_CORE_SD}/fr-core-location"
PROFILE_ORGANIZATION = f"{FR_CORE_SD}/fr-core-organization"
PROFILE_PRACTITIONER = f"{FR_CORE_SD}/fr-core-practitioner"
PROFILE_PRACTITIONER_ROLE = f"{FR_CORE_SD}/fr-core-practitioner-role"
PROFILE_RELATED_PERSON = f"{FR_CORE_SD}/fr-core-related-person"
PROFILE_COVERAGE = f"{FR_CORE_SD}/fr-core-coverage"
PROFILE_APPOINTMENT = f"{FR_CORE_SD}/fr-core-appointment"
PROFILE_SCHEDULE = f"{FR_CORE_SD}/fr-core-schedule"
PROFILE_SERVICE_REQUEST = f"{FR_CORE_SD}/fr-core-service-request"
PROFILE_OBSERVATION = f"{FR_CORE_SD}/fr-core-observation"
PROFILE_MESSAGE_HEADER = f"{FR_CORE_SD}/fr-core-message-header"

# Extensions FR Core
EXT_IDENTITY_RELIABILITY = f"{FR_CORE_SD}/fr-core-identity-reliability"
EXT_ESTIMATED_DISCHARGE = f"{FR_CORE_SD}/fr-core-estimated-discharge-date"
EXT_CARE_MODE = f"{FR_CORE_SD}/fr-core-mode-prise-en-charge"
EXT_INSEE_CODE = f"{FR_CORE_SD}/fr-core-address-insee-code"
EXT_COVERAGE_INSURED_ID = f"{FR_CORE_SD}/fr-core-coverage-insured-id"
EXT_SERVICE_REQUEST_BILLING = f"{FR_CORE_SD}/fr-core-service-request-billing"

# Extensions FHIR standard
EXT_BIRTH_PLACE = "http://hl7.org/fhir/StructureDefinition/patient-birthPlace"
EXT_MOTHERS_MAIDEN_NAME = "http://hl7.org/fhir/StructureDefinition/patient-mothersMaidenName"

# Extensions Interop'Santé (segments Z IHE PAM France)
INTEROPSANTE_SD = "http://interopsante.org/fhir/StructureDefinition"
EXT_MOVEMENT = f"{INTEROPSANTE_SD}/FrEncounterMovement"
EXT_LAST_STAY_DATE = f"{INTEROPSANTE_SD}/FrEncounterLastStayDate"
EXT_TRANSPORT_MODE = f"{INTEROPSANTE_SD}/FrEncounterTransportMode"
EXT_PMSI_ORIGIN = f"{INTEROPSANTE_SD}/FrEncounterPmsiProvenance"
EXT_PMSI_DESTINATION = f"{INTEROPSANTE_SD}/FrEncounterPmsiDestination"
EXT_PROFESSION = f"{INTEROPSANTE_SD}/FrPatientProfession"
EXT_IDENTITY_METHOD = f"{INTEROPSANTE_SD}/FrPatientIdentityMethod"
EXT_SMS_CONSENT = f"{INTEROPSANTE_SD}/FrPatientSmsConsent"
EXT_FULL_COVERAGE = f"{INTEROPSANTE_SD}/FrCoverageFullCoverage"

# Systèmes d'identifiants
OID_INS_NIR = "1.2.250.1.213.1.4.8"
OID_INS_NIA = "1.2.250.1.213.1.4.9"
OID_INS_NIR_TEST = "1.2.250.1.213.1.4.10"
OID_INS_NIA_TEST = "1.2.250.1.213.1.4.11"
OID_INS_C = "1.2.250.1.213.1.4.2"
OID_INTERNAL = "1.2.250.1.71.4.2.7"       # IPP et numéros de venue
OID_PRACTITIONER = "1.2.250.1.71.4.2.1"   # RPPS / ADELI
OID_ORGANIZATION = "1.2.250.1.71.4.2.2"

SYSTEM_INS_NIR = f"urn:oid:{OID_INS_NIR}"
SYSTEM_INTERNAL = f"urn:oid:{OID_INTERNAL}"
SYSTEM_PRACTITIONER = f"urn:oid:{OID_PRACTITIONER}"
SYSTEM_ORGANIZATION = f"urn:oid:{OID_ORGANIZATION}"

# Systèmes de codes
CS_V2_0203 = "http://terminology.hl7.org/CodeSystem/v2-0203"
CS_FR_V2_0203 = f"{FR_CORE_CS}/fr-core-cs-v2-0203"
CS_IDENTITY_RELIABILITY = f"{FR_CORE_CS}/fr-core-cs-identity-reliability"
CS_ACT_CODE = "http://terminology.hl7.org/CodeSystem/v3-ActCode"
CS_ACT_PRIORITY = "http://terminology.hl7.org/CodeSystem/v3-ActPriority"
CS_PARTICIPATION_TYPE = "http://terminology.hl7.org/CodeSystem/v3-ParticipationType"
CS_MARITAL_STATUS = "http://terminology.hl7.org/CodeSystem/v3-MaritalStatus"
CS_ROLE_CODE = "http://terminology.hl7.org/CodeSystem/v3-RoleCode"
CS_V2_0003 = "http://terminology.hl7.org/CodeSystem/v2-0003"
CS_V2_0023 = "http://terminology.hl7.org/CodeSystem/v2-0023"
CS_V2_0112 = "http://terminology.hl7.org/CodeSystem/v2-0112"
CS_V2_0074 = "http://terminology.hl7.org/CodeSystem/v2-0074"
CS_V2_0070 = "http://terminology.hl7.org/CodeSystem/v2-0070"
CS_ICD10 = "http://hl7.org/fhir/sid/icd-10"
CS_LOCATION_PHYSICAL_TYPE = "http://terminology.hl7.org/CodeSystem/location-physical-type"
CS_SUBSCRIBER_RELATIONSHIP = "http://terminology.hl7.org/CodeSystem/subscriber-relationship"
CS_OBSERVATION_CATEGORY = "http://terminology.hl7.org/CodeSystem/observation-category"
CS_ORGANIZATION_TYPE = "http://terminology.hl7.org/CodeSystem/organization-type"
CS_CONTACT_ROLE = "https://mos.esante.gouv.fr/NOS/TRE_R260-TypeLienPatient/FHIR/TRE-R260-TypeLienPatient"
CS_ADMISSION_FR = "https://mos.esante.gouv.fr/NOS/TRE_R306-TypeAdmission/FHIR/TRE-R306-TypeAdmission"
CS_DISCHARGE_FR = "https://mos.esante.gouv.fr/NOS/TRE_R307-TypeSortie/FHIR/TRE-R307-TypeSortie"
CS_PRACTITIONER_ROLE_FR = "http://interopsante.org/fhir/CodeSystem/tre-r94"
CS_DATA_ABSENT_REASON = "http://terminology.hl7.org/CodeSystem/data-absent-reason"


def new_id() -> str:
    return str(uuid.uuid4())


def new_resource(resource_type: str, profile: Optional[str] = None) -> Dict[str, Any]:
    """Ressource vide avec un id uuid et, le cas échéant, le profil FR Core."""
    resource: Dict[str, Any] = {"resourceType": resource_type, "id": new_id()}
    if profile:
        resource["meta"] = {"profile": [profile]}
    return resource


def coding(system: Optional[str], code: Optional[str], display: Optional[str] = None) -> Dict[str, str]:
    result = {}
    if system:
        result["system"] = system
    if code:
        result["code"] = code
    if display:
        result["display"] = display
    return result


def codeable_concept(
    system: Optional[str],
    code: Optional[str],
    display: Optional[str] = None,
    text: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """CodeableConcept à un seul coding, ou None si ni code ni texte."""
    if not code and not text:
        return None
    concept: Dict[str, Any] = {}
    if code:
        concept["coding"] = [coding(system, code, display)]
    if text:
        concept["text"] = text
    return concept


def reference(full_url: Optional[str], display: Optional[str] = None) -> Optional[Dict[str, str]]:
    if not full_url:
        return None
    ref = {"reference": full_url}
    if display:
        ref["display"] = display
    return ref


def extension(url: str, **value: Any) -> Dict[str, Any]:
    """extension("url", valueString="x") -> {"url": "url", "valueString": "x"}"""
    ext: Dict[str, Any] = {"url": url}
    ext.update({key: val for key, val in value.items() if val is not None})
    return ext


def add_extension(resource: Dict[str, Any], ext: Dict[str, Any]) -> None:
    """Ajoute une extension en remplaçant une éventuelle extension de même URL."""
    extensions: List[Dict[str, Any]] = resource.setdefault("extension", [])
    extensions[:] = [existing for existing in extensions if existing.get("url") != ext["url"]]
    extensions.append(ext)


def find_extension(resource: Dict[str, Any], url: str) -> Optional[Dict[str, Any]]:
    for ext in resource.get("extension", []) or []:
        if ext.get("url") == url:
            return ext
    return None


def clean_empty(value: Any) -> Any:
    """Supprime récursivement None, "", [] et {} (les booléens et 0 sont conservés)."""
    if isinstance(value, dict):
        cleaned = {key: clean_empty(val) for key, val in value.items()}
        return {key: val for key, val in cleaned.items() if val not in (None, "", [], {})}
    if isinstance(value, list):
        cleaned_list = [clean_empty(item) for item in value]
        return [item for item in cleaned_list if item not in (None, "", [], {})]
    return value
