"""
Tests du handler ADT: Patient, Encounter, Location, praticiens, fusion A40
"""
import pytest

from frcore_bridge.services.fhir_fr import (
    CS_PARTICIPATION_TYPE,
    EXT_BIRTH_PLACE,
    EXT_ESTIMATED_DISCHARGE,
    EXT_IDENTITY_RELIABILITY,
    PROFILE_PATIENT,
    PROFILE_PATIENT_INS,
    SYSTEM_PRACTITIONER,
)

from helpers import (
    default_msh,
    extension_of,
    message,
    resolve,
    resource,
    resources,
    segment,
    warning_segments,
)


def _adt(event, *segments, structure=None):
    code = f"ADT^{event}^{structure}" if structure else f"ADT^{event}"
    return message(default_msh(code), *segments)


PID = segment("PID", {1: "1", 3: "IPP001^^^HOPITAL^PI", 5: "DUPONT^JEAN^^^^^L", 7: "19800101", 8: "M"})


def _participant_codes(encounter):
    return [participant["type"][0]["coding"][0]["code"] for participant in encounter.get("participant", [])]


# --- A01 complet ---

def test_a01_entry_order(run, adt_a01):
    result = run(adt_a01)
    types = [entry["resource"]["resourceType"] for entry in result.bundle["entry"]]
    assert types == [
        "MessageHeader",
        "Patient",
        "Organization",
        "Organization",
        "Location",
        "Encounter",
        "Practitioner",
        "PractitionerRole",
        "PractitionerRole",
        "PractitionerRole",
    ]
    assert (result.message_type, result.event_type) == ("ADT", "A01")


def test_a01_message_header(run, adt_a01):
    bundle = run(adt_a01).bundle
    header = resource(bundle, "MessageHeader")
    assert header["eventCoding"]["code"] == "ADT_A01"
    assert resolve(bundle, header["sender"])["name"] == "HOPITAL"
    assert resolve(bundle, header["destination"][0]["receiver"])["name"] == "CLINIQUE"
    assert header["destination"][0]["endpoint"] == "urn:hl7v2:DPI"
    focus = [resolve(bundle, ref)["resourceType"] for ref in header["focus"]]
    assert focus == ["Patient", "Encounter"]


def test_a01_patient(run, adt_a01, nir):
    patient = resource(run(adt_a01).bundle, "Patient")
    assert patient["meta"]["profile"] == [PROFILE_PATIENT_INS]
    assert [identifier["value"] for identifier in patient["identifier"]] == [nir, "IPP001"]
    assert patient["name"][0] == {"use": "official", "family": "DUPONT", "given": ["JEAN", "PIERRE"]}
    assert patient["name"][1]["use"] == "usual"
    assert patient["gender"] == "male"
    assert patient["birthDate"] == "1980-01-01"
    assert patient["maritalStatus"]["coding"][0]["code"] == "M"

    telecoms = {(telecom["system"], telecom["value"]): telecom.get("use") for telecom in patient["telecom"]}
    assert telecoms[("phone", "0601020304")] == "mobile"
    assert telecoms[("email", "jean.dupont@example.fr")] == "home"
    assert telecoms[("phone", "0145454545")] == "work"

    assert len(patient["address"]) == 1
    assert patient["address"][0]["city"] == "PARIS"
    assert extension_of(patient, EXT_BIRTH_PLACE)["valueAddress"]["city"] == "LYON"
    reliability = extension_of(patient, EXT_IDENTITY_RELIABILITY)
    assert reliability["extension"][0]["valueCoding"]["code"] == "VALI"


def test_a01_encounter(run, adt_a01):
    bundle = run(adt_a01).bundle
    encounter = resource(bundle, "Encounter")
    assert encounter["status"] == "in-progress"
    assert encounter["class"]["code"] == "IMP"
    assert encounter["period"]["start"] == "2025-01-15T10:30:00"
    assert encounter["identifier"][0]["value"] == "VN0001"
    assert encounter["priority"]["coding"][0]["code"] == "R"
    assert resolve(bundle, encounter["subject"])["resourceType"] == "Patient"
    assert resolve(bundle, encounter["serviceProvider"])["name"] == "HOPITAL"
    # sans PV2-9 ni ZFV-6: la date d'admission sert de sortie prévue
    assert extension_of(encounter, EXT_ESTIMATED_DISCHARGE)["valueDateTime"] == "2025-01-15T10:30:00"

    location = encounter["location"][0]
    assert location["status"] == "active"
    assert location["period"] == {"start": "2025-01-15T10:30:00"}
    assert resolve(bundle, location["location"])["name"] == "CARDIO / 101 / A"


def test_a01_practitioner_is_deduplicated(run, adt_a01):
    """PV1-7, PV1-17 et ROL-4 citent le même médecin: un seul Practitioner"""
    bundle = run(adt_a01).bundle
    practitioners = resources(bundle, "Practitioner")
    assert len(practitioners) == 1
    practitioner = practitioners[0]
    assert practitioner["identifier"][0]["system"] == SYSTEM_PRACTITIONER
    assert practitioner["identifier"][0]["value"] == "10000000001"
    assert practitioner["name"][0]["prefix"] == ["DR"]

    encounter = resource(bundle, "Encounter")
    assert _participant_codes(encounter) == ["ATND", "ADM", "PPRF"]
    roles = resources(bundle, "PractitionerRole")
    assert [role["code"][0]["coding"][0]["code"] for role in roles] == ["ATND", "ADM", "PPRF"]
    assert all(role["code"][0]["coding"][0]["system"] == CS_PARTICIPATION_TYPE for role in roles)
    assert all(resolve(bundle, role["practitioner"]) is practitioner for role in roles)


def test_a01_is_fr_core_compliant(run, adt_a01):
    result = run(adt_a01, validate_fr_core=True)
    assert result.validation.is_valid
    assert result.validation.level == "ok"
    assert result.is_compliant


def test_a01_timestamp_and_identifier(run, adt_a01):
    bundle = run(adt_a01).bundle
    assert bundle["timestamp"] == "2025-01-15T10:30:00+00:00"
    assert bundle["identifier"]["value"] == "urn:hl7v2:MSG0001"


# --- Variantes ---

def test_encounter_start_falls_back_to_evn(run):
    raw = _adt(
        "A01",
        segment("EVN", {1: "A01", 2: "20250115103000", 6: "20250115100000"}),
        PID,
        segment("PV1", {1: "1", 2: "I", 3: "CARDIO"}),
    )
    encounter = resource(run(raw).bundle, "Encounter")
    assert encounter["period"]["start"] == "2025-01-15T10:00:00"


def test_default_location_when_point_of_care_missing(run):
    result = run(_adt("A01", PID, segment("PV1", {1: "1", 2: "I"})))
    bundle = result.bundle
    encounter = resource(bundle, "Encounter")
    assert len(encounter["location"]) == 1
    location = resolve(bundle, encounter["location"][0]["location"])
    assert location["mode"] == "kind"
    assert location["name"] == "Lieu non précisé"
    assert ("PV1", 3) in [(w.segment, w.field_index) for w in result.warnings]


def test_prior_location_is_completed(run):
    raw = _adt("A02", PID, segment("PV1", {1: "1", 2: "I", 3: "CARDIO^102", 6: "URG^1"}))
    bundle = run(raw).bundle
    locations = resource(bundle, "Encounter")["location"]
    assert [location["status"] for location in locations] == ["active", "completed"]
    assert resolve(bundle, locations[1]["location"])["name"] == "URG / 1"


def test_a03_discharge(run):
    raw = _adt("A03", PID, segment("PV1", {
        1: "1", 2: "I", 3: "CARDIO", 36: "01", 44: "20250110080000", 45: "20250115180000",
    }))
    encounter = resource(run(raw).bundle, "Encounter")
    assert encounter["status"] == "finished"
    assert encounter["period"] == {"start": "2025-01-10T08:00:00", "end": "2025-01-15T18:00:00"}
    assert encounter["location"][0]["status"] == "completed"
    assert encounter["hospitalization"]["dischargeDisposition"]["coding"][0]["code"] == "01"


@pytest.mark.parametrize("event,status", [
    ("A05", "planned"),
    ("A11", "cancelled"),
    ("A27", "cancelled"),
    ("A13", "in-progress"),
    ("A08", "in-progress"),
])
def test_encounter_status_from_event(run, event, status):
    raw = _adt(event, PID, segment("PV1", {1: "1", 2: "I", 3: "CARDIO"}))
    assert resource(run(raw).bundle, "Encounter")["status"] == status


def test_discharge_date_without_code_finishes_encounter(run):
    raw = _adt("A08", PID, segment("PV1", {1: "1", 2: "I", 3: "CARDIO", 45: "20250115180000"}))
    assert resource(run(raw).bundle, "Encounter")["status"] == "finished"


def test_missing_pid(run):
    result = run(_adt("A01", segment("PV1", {1: "1", 2: "I", 3: "CARDIO"})))
    assert not resources(result.bundle, "Patient")
    assert not resources(result.bundle, "Encounter")
    assert len(resources(result.bundle, "Organization")) == 2
    assert warning_segments(result.warnings)[:2] == ["PID", "PV1"]


def test_missing_pv1_for_visit_event(run):
    result = run(_adt("A01", PID))
    assert not resources(result.bundle, "Encounter")
    assert "PV1" in warning_segments(result.warnings)


def test_missing_pv1_is_silent_for_patient_update(run):
    result = run(_adt("A31", PID))
    assert "PV1" not in warning_segments(result.warnings)
    assert resource(result.bundle, "Patient")["meta"]["profile"] == [PROFILE_PATIENT]


def test_unreadable_birth_date_warns(run):
    raw = _adt("A28", segment("PID", {1: "1", 3: "IPP001^^^HOPITAL^PI", 5: "DUPONT^JEAN", 7: "1980-01-01"}))
    result = run(raw)
    assert "birthDate" not in resource(result.bundle, "Patient")
    assert ("PID", 7) in [(w.segment, w.field_index) for w in result.warnings]


def test_primary_care_physician(run):
    raw = _adt("A28", PID, segment("PD1", {4: "10000000009^LAMBERT^JULIE"}))
    bundle = run(raw).bundle
    patient = resource(bundle, "Patient")
    doctor = resolve(bundle, patient["generalPractitioner"][0])
    assert doctor["name"][0]["family"] == "LAMBERT"


def test_a40_merge_link(run, adt_a40):
    result = run(adt_a40)
    patient = resource(result.bundle, "Patient")
    assert patient["link"] == [{
        "other": {
            "identifier": {"value": "IPP200", "system": "urn:oid:1.2.250.1.71.4.2.7"},
            "display": "HOPITAL IPP200",
        },
        "type": "replaces",
    }]
    assert "PV1" not in warning_segments(result.warnings)


def test_merge_without_identifier_warns(run):
    result = run(_adt("A40", PID, segment("MRG", {1: ""})))
    assert "link" not in resource(result.bundle, "Patient")
    assert "MRG" in warning_segments(result.warnings)


def test_rol_without_encounter_still_builds_practitioner(run):
    raw = _adt("A31", PID, segment("ROL", {1: "1", 2: "AD", 3: "ODRP", 4: "123456789^BERNARD^LUC"}))
    bundle = run(raw).bundle
    practitioner = resource(bundle, "Practitioner")
    assert practitioner["identifier"][0]["type"]["coding"][0]["code"] == "ADELI"
    role = resource(bundle, "PractitionerRole")
    assert role["code"][0]["coding"][0]["code"] == "REF"


def test_rol_without_person_warns(run):
    result = run(_adt("A31", PID, segment("ROL", {1: "1", 2: "AD", 3: "AT"})))
    assert not resources(result.bundle, "Practitioner")
    assert "ROL" in warning_segments(result.warnings)


def test_practitioners_without_identifier_are_deduplicated_by_name(run):
    raw = _adt("A01", PID, segment("PV1", {
        1: "1", 2: "I", 3: "CARDIO", 7: "^GARNIER^MARC", 8: "^Garnier^Marc",
    }))
    bundle = run(raw).bundle
    assert len(resources(bundle, "Practitioner")) == 1
    assert _participant_codes(resource(bundle, "Encounter")) == ["ATND", "REF"]


def test_admit_source_from_pv1(run):
    raw = _adt("A01", PID, segment("PV1", {1: "1", 2: "E", 3: "URG", 14: "7"}))
    encounter = resource(run(raw, french_mode=False).bundle, "Encounter")
    assert encounter["class"]["code"] == "EMER"
    assert encounter["hospitalization"]["admitSource"]["coding"][0] == {
        "system": "http://terminology.hl7.org/CodeSystem/v2-0023",
        "code": "7",
        "display": "Emergency room",
    }
