"""
Tests de la classification des identifiants (INS, IPP, OID explicite, générique)
"""
from datetime import datetime

import pytest

from frcore_bridge.models_hl7 import Delimiters
from frcore_bridge.models_identifiers import CXIdentifier, IdentifierKind
from frcore_bridge.services.fhir_fr import SYSTEM_INS_NIR, SYSTEM_INTERNAL, SYSTEM_ORGANIZATION, SYSTEM_PRACTITIONER
from frcore_bridge.services.hl7_parser import parse_field
from frcore_bridge.services.identifier_manager import (
    build_organization_identifier,
    build_visit_identifier,
    classify_identifier,
    classify_practitioner_identifier,
    has_national_identifier,
    identifier_kind,
    parse_cx_identifier,
    resolve_patient_identifiers,
    to_fhir_identifier,
)

from helpers import fake_nir

NOW = datetime(2025, 1, 15, 10, 30, 45)


def _cx(raw):
    return parse_cx_identifier(parse_field(raw, Delimiters()))


def test_parse_cx_identifier():
    cx = _cx("IPP001^^^HOPITAL&urn:oid:1.2.250.1.71.4.2.7&ISO^PI")
    assert cx == CXIdentifier("IPP001", "PI", "HOPITAL", "1.2.250.1.71.4.2.7")
    assert not _cx("^^^HOPITAL^PI").has_value


@pytest.mark.parametrize("raw", [
    "{nir}^^^ASIP-SANTE-INS-NIR&1.2.250.1.213.1.4.8&ISO^INS",
    "{nir}^^^AUTRE^INS-NIR",
    "{nir}^^^ASIP-SANTE INS-A^NH",
    "{nir}^^^ASIP^",
])
def test_national_identifier_detection(raw):
    """Marqueur INS (type ou autorité), ou 15 chiffres sous une autorité de type INS"""
    classification = classify_identifier(_cx(raw.format(nir=fake_nir())))
    assert classification.kind == IdentifierKind.INS
    assert classification.system == SYSTEM_INS_NIR
    assert classification.type_code == "INS-NIR"
    assert classification.use == "official"


def test_nia_marker_uses_nia_oid():
    classification = classify_identifier(_cx("X123^^^ANS^INS-NIA"))
    assert classification.type_code == "INS-NIA"
    assert classification.system == "urn:oid:1.2.250.1.213.1.4.9"


def test_fifteen_digits_without_ins_authority_is_not_national():
    classification = classify_identifier(_cx(f"{fake_nir()}^^^HOPITAL^PI"))
    assert classification.kind == IdentifierKind.IPP


@pytest.mark.parametrize("raw", ["IPP001^^^HOPITAL^PI", "IPP001^^^HOPITAL^NH", "IPP001", "IPP001^^^IPP^XX"])
def test_internal_identifier(raw):
    classification = classify_identifier(_cx(raw))
    assert classification.kind == IdentifierKind.IPP
    assert classification.system == SYSTEM_INTERNAL
    assert classification.type_code == "PI"
    assert classification.use == "usual"


def test_explicit_oid_is_kept():
    classification = classify_identifier(_cx("LAB42^^^LABO&1.2.3.4&ISO^MR"))
    assert classification.kind == IdentifierKind.EXPLICIT
    assert classification.system == "urn:oid:1.2.3.4"
    assert classification.type_code == "MR"


def test_known_national_oid_is_retagged():
    classification = classify_identifier(_cx("X2^^^AUTRE&1.2.250.1.213.1.4.9&ISO^XX"))
    assert classification.kind == IdentifierKind.INS
    assert classification.type_code == "INS-NIA"


def test_generic_identifier():
    classification = classify_identifier(_cx("MR99^^^^MR"))
    assert classification.kind == IdentifierKind.GENERIC
    assert classification.system is None
    assert to_fhir_identifier("MR99", classification) == {
        "type": {"coding": [{"system": "http://terminology.hl7.org/CodeSystem/v2-0203", "code": "MR"}]},
        "value": "MR99",
    }


def test_classification_is_idempotent():
    """Re-classer un identifiant produit redonne la même catégorie"""
    for raw in (
        f"{fake_nir()}^^^ASIP-SANTE-INS-NIR^INS",
        "IPP001^^^HOPITAL^PI",
        "LAB42^^^LABO&1.2.3.4&ISO^MR",
        "MR99^^^^MR",
    ):
        cx = _cx(raw)
        classification = classify_identifier(cx)
        identifier = to_fhir_identifier(cx.value, classification, assigner=cx.authority_name or None)
        assert identifier_kind(identifier) == classification.kind


def test_resolve_deduplicates_by_system_and_value():
    field = parse_field("IPP001^^^HOPITAL^PI~IPP001^^^HOPITAL^PI~IPP002^^^HOPITAL^PI", Delimiters())
    identifiers = resolve_patient_identifiers([field], now=NOW)
    assert [identifier["value"] for identifier in identifiers] == ["IPP001", "IPP002"]


def test_resolve_synthesizes_temporary_identifier():
    reasons = []
    identifiers = resolve_patient_identifiers([parse_field("", Delimiters())], now=NOW, warn=reasons.append)
    assert len(identifiers) == 1
    assert identifiers[0]["use"] == "temp"
    assert identifiers[0]["value"] == "TMP20250115103045"
    assert identifier_kind(identifiers[0]) == IdentifierKind.TEMP
    assert reasons


def test_resolve_derives_internal_identifier_from_national():
    nir = fake_nir()
    field = parse_field(f"{nir}^^^ASIP-SANTE-INS-NIR^INS", Delimiters())
    identifiers = resolve_patient_identifiers([field], now=NOW)
    assert len(identifiers) == 2
    derived = identifiers[1]
    assert derived["system"] == SYSTEM_INTERNAL
    assert derived["value"] == f"{nir[:8]}103045"
    assert has_national_identifier(identifiers)


def test_resolve_reads_several_fields():
    """PID-3 puis PID-2 et PID-4 (identifiants historiques)"""
    pid3 = parse_field("IPP001^^^HOPITAL^PI", Delimiters())
    pid2 = parse_field("ANCIEN01^^^LABO&1.2.3.4&ISO^MR", Delimiters())
    identifiers = resolve_patient_identifiers([pid3, pid2, parse_field("", Delimiters())], now=NOW)
    assert [identifier["value"] for identifier in identifiers] == ["IPP001", "ANCIEN01"]
    assert not has_national_identifier(identifiers)


@pytest.mark.parametrize("value,id_type,authority,code", [
    ("10000000001", "", "", "RPPS"),
    ("10000000001", "RPPS", "", "RPPS"),
    ("ABC", "", "RPPS", "RPPS"),
    ("123456789", "", "", "ADELI"),
    ("987", "ADELI", "", "ADELI"),
])
def test_practitioner_national_identifiers(value, id_type, authority, code):
    identifier = classify_practitioner_identifier(value, id_type, authority)
    assert identifier["system"] == SYSTEM_PRACTITIONER
    assert identifier["type"]["coding"][0]["code"] == code


def test_practitioner_internal_identifier():
    identifier = classify_practitioner_identifier("DR42", "", "HOPITAL")
    assert identifier["system"] == SYSTEM_INTERNAL
    assert identifier["type"]["coding"][0]["code"] == "PRN"
    assert identifier["assigner"] == {"display": "HOPITAL"}
    assert classify_practitioner_identifier("") is None


def test_visit_identifier():
    identifier = build_visit_identifier(parse_field("VN0001^^^HOPITAL^VN", Delimiters()))
    assert identifier["type"]["coding"][0]["code"] == "VN"
    assert identifier["system"] == SYSTEM_INTERNAL
    assert identifier["value"] == "VN0001"
    assert build_visit_identifier(parse_field("", Delimiters())) is None


def test_organization_identifier():
    finess = build_organization_identifier("HOPITAL", "750712184")
    assert finess["system"] == SYSTEM_ORGANIZATION
    assert finess["value"] == "750712184"
    corse = build_organization_identifier("", "2A0000123")
    assert corse["value"] == "2A0000123"
    explicit = build_organization_identifier("HOPITAL", "1.2.250.1.71.1.2.3")
    assert explicit == {"use": "official", "system": "urn:oid:1.2.250.1.71.1.2.3", "value": "HOPITAL"}
    assert build_organization_identifier("UF001") == {"use": "usual", "system": SYSTEM_ORGANIZATION, "value": "UF001"}
    assert build_organization_identifier("") is None
