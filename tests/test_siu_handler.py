"""
Tests du handler SIU: Appointment, Schedule, participants
"""
import pytest

from frcore_bridge.services.fhir_fr import PROFILE_APPOINTMENT, PROFILE_SCHEDULE
from frcore_bridge.services.siu_handler import appointment_status

from helpers import default_msh, message, resolve, resource, resources, segment, warning_segments


def test_s12_entries(run, siu_s12):
    bundle = run(siu_s12).bundle
    types = [entry["resource"]["resourceType"] for entry in bundle["entry"]]
    assert types == [
        "MessageHeader",
        "Patient",
        "Organization",
        "Organization",
        "Practitioner",
        "Location",
        "Schedule",
        "Appointment",
    ]
    header = resource(bundle, "MessageHeader")
    focus = [resolve(bundle, ref)["resourceType"] for ref in header["focus"]]
    assert focus == ["Patient", "Appointment"]


def test_s12_appointment(run, siu_s12):
    bundle = run(siu_s12).bundle
    appointment = resource(bundle, "Appointment")
    assert appointment["meta"]["profile"] == [PROFILE_APPOINTMENT]
    assert appointment["status"] == "booked"
    assert appointment["start"] == "2025-03-10T14:00:00"
    assert appointment["end"] == "2025-03-10T14:45:00"
    assert appointment["minutesDuration"] == 45

    placer, filler = appointment["identifier"]
    assert placer["value"] == "RDV001"
    assert placer["system"] == "urn:oid:1.2.250.1.71.4.2.7"
    assert placer["type"]["coding"][0]["code"] == "PLAC"
    assert filler["value"] == "RDV001F"

    assert appointment["serviceType"][0]["coding"][0]["code"] == "CARDIO"
    assert appointment["appointmentType"]["coding"][0]["code"] == "NORMAL"
    assert appointment["reasonCode"][0]["text"] == "Consultation de suivi"


def test_s12_participants(run, siu_s12):
    bundle = run(siu_s12).bundle
    appointment = resource(bundle, "Appointment")
    actors = [resolve(bundle, participant["actor"]) for participant in appointment["participant"]]
    assert [actor["resourceType"] for actor in actors] == ["Patient", "Practitioner", "Location"]
    assert all(participant["status"] == "accepted" for participant in appointment["participant"])
    assert appointment["participant"][1]["type"][0]["coding"][0]["code"] == "PPRF"
    assert actors[1]["name"][0]["family"] == "LEGRAND"
    assert actors[2]["name"] == "CARDIO / 201"


def test_s12_schedule(run, siu_s12):
    bundle = run(siu_s12).bundle
    appointment = resource(bundle, "Appointment")
    schedule = resolve(bundle, appointment["supportingInformation"][0])
    assert schedule["resourceType"] == "Schedule"
    assert schedule["meta"]["profile"] == [PROFILE_SCHEDULE]
    assert schedule["active"] is True
    assert [resolve(bundle, actor)["resourceType"] for actor in schedule["actor"]] == ["Practitioner", "Location"]


def test_s12_is_compliant(run, siu_s12):
    result = run(siu_s12, validate_fr_core=True)
    assert result.validation.is_valid


@pytest.mark.parametrize("event,status", [
    ("S12", "booked"),
    ("S13", "cancelled"),
    ("S14", "booked"),
    ("S15", "booked"),
    ("S16", "cancelled"),
    ("S17", "entered-in-error"),
    ("S26", "proposed"),
    ("S99", "proposed"),
])
def test_appointment_status(event, status):
    assert appointment_status(event) == status


def test_unknown_event_is_proposed_with_warning(run):
    raw = message(
        default_msh("SIU^S99"),
        segment("SCH", {1: "RDV9", 11: "^^^20250310140000"}),
        segment("PID", {1: "1", 3: "IPP300^^^HOPITAL^PI", 5: "PETIT^LOUIS"}),
    )
    result = run(raw)
    assert resource(result.bundle, "Appointment")["status"] == "proposed"
    assert ("MSH", 9) in [(w.segment, w.field_index) for w in result.warnings]


def test_cancellation_reason(run):
    raw = message(
        default_msh("SIU^S13"),
        segment("SCH", {1: "RDV001", 6: "ANNUL^Annulation patient"}),
        segment("PID", {1: "1", 3: "IPP300^^^HOPITAL^PI"}),
    )
    appointment = resource(run(raw).bundle, "Appointment")
    assert appointment["status"] == "cancelled"
    assert appointment["cancelationReason"]["text"] == "Annulation patient"


def test_duration_from_sch_and_explicit_end(run):
    raw = message(
        default_msh("SIU^S12"),
        segment("SCH", {1: "RDV002", 9: "1", 10: "H", 11: "^^^20250310140000^20250310143000"}),
        segment("PID", {1: "1", 3: "IPP300^^^HOPITAL^PI"}),
    )
    appointment = resource(run(raw).bundle, "Appointment")
    assert appointment["minutesDuration"] == 60
    assert appointment["end"] == "2025-03-10T14:30:00"


def test_start_from_ais_when_sch_has_no_timing(run):
    raw = message(
        default_msh("SIU^S12"),
        segment("SCH", {1: "RDV003"}),
        segment("PID", {1: "1", 3: "IPP300^^^HOPITAL^PI"}),
        segment("AIS", {1: "1", 3: "RADIO", 4: "20250311090000", 7: "20", 8: "MIN"}),
    )
    bundle = run(raw).bundle
    appointment = resource(bundle, "Appointment")
    assert appointment["start"] == "2025-03-11T09:00:00"
    assert appointment["end"] == "2025-03-11T09:20:00"
    # sans intervenant ni lieu, l'agenda est porté par le patient
    schedule = resolve(bundle, appointment["supportingInformation"][0])
    assert resolve(bundle, schedule["actor"][0])["resourceType"] == "Patient"


def test_booked_without_start_warns(run):
    raw = message(default_msh("SIU^S12"), segment("SCH", {1: "RDV004"}), segment("PID", {1: "1", 3: "IPP300^^^HOPITAL^PI"}))
    result = run(raw)
    assert "start" not in resource(result.bundle, "Appointment")
    assert ("SCH", 11) in [(w.segment, w.field_index) for w in result.warnings]
    assert not resources(result.bundle, "Schedule")


def test_missing_sch(run):
    result = run(message(default_msh("SIU^S12"), segment("PID", {1: "1", 3: "IPP300^^^HOPITAL^PI"})))
    assert not resources(result.bundle, "Appointment")
    assert "SCH" in warning_segments(result.warnings)


def test_appointment_without_participant_fails_validation(run):
    raw = message(default_msh("SIU^S12"), segment("SCH", {1: "RDV005", 11: "^^^20250310140000"}))
    result = run(raw, strict_compliance=True)
    appointment = resource(result.bundle, "Appointment")
    assert "participant" not in appointment
    assert not result.is_compliant
    assert "APPOINTMENT_PARTICIPANT_MISSING" in [issue.code for issue in result.validation.errors]
    assert warning_segments(result.warnings)[:1] == ["PID"]


def test_one_schedule_per_service(run):
    raw = message(
        default_msh("SIU^S12"),
        segment("SCH", {1: "RDV006", 11: "^^^20250310140000"}),
        segment("PID", {1: "1", 3: "IPP300^^^HOPITAL^PI"}),
        segment("AIS", {1: "1", 3: "CARDIO^Consultation cardiologie", 7: "30", 8: "MIN"}),
        segment("AIS", {1: "2", 3: "ECHO^Echographie cardiaque", 7: "20", 8: "MIN"}),
        segment("AIP", {1: "1", 3: "10000000002^LEGRAND^PAUL"}),
    )
    bundle = run(raw).bundle
    appointment = resource(bundle, "Appointment")
    schedules = [resolve(bundle, ref) for ref in appointment["supportingInformation"]]
    assert [s["serviceType"][0]["coding"][0]["code"] for s in schedules] == ["CARDIO", "ECHO"]
    assert len(resources(bundle, "Schedule")) == 2
    assert schedules[0]["actor"] == schedules[1]["actor"]
    assert [c["coding"][0]["code"] for c in appointment["serviceType"]] == ["CARDIO", "ECHO"]
    # la durée reste celle de la première prestation
    assert appointment["minutesDuration"] == 30


def test_diagnoses_become_reason_codes(run):
    raw = message(
        default_msh("SIU^S12"),
        segment("SCH", {1: "RDV007", 7: "CONSULT^Consultation de suivi", 11: "^^^20250310140000"}),
        segment("PID", {1: "1", 3: "IPP300^^^HOPITAL^PI"}),
        segment("DG1", {1: "1", 3: "I10^Hypertension essentielle^I10"}),
        segment("DG1", {1: "2", 3: "E11", 4: "Diabete de type 2"}),
    )
    reasons = resource(run(raw).bundle, "Appointment")["reasonCode"]
    assert reasons[0]["text"] == "Consultation de suivi"
    assert reasons[1]["coding"][0] == {
        "system": "http://hl7.org/fhir/sid/icd-10",
        "code": "I10",
        "display": "Hypertension essentielle",
    }
    assert reasons[2]["coding"][0]["code"] == "E11"
    assert reasons[2]["text"] == "Diabete de type 2"
