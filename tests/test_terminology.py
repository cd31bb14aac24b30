"""
Tests des vocabulaires français (base SQLModel) et du lookup en lecture seule
"""
import warnings

import pytest
from sqlalchemy.exc import SAWarning
from sqlmodel import Session, select

from frcore_bridge.db import create_terminology_engine, init_db
from frcore_bridge.models_vocabulary import VocabularyMapping, VocabularySystem, VocabularyValue
from frcore_bridge.services.fhir_fr import CS_ACT_CODE, CS_ADMISSION_FR, FR_CORE_CS
from frcore_bridge.services.terminology import TerminologyLookup, get_default_terminology
from frcore_bridge.vocabulary_init import all_vocabulary_systems, init_vocabularies


def test_init_vocabularies_is_idempotent():
    engine = create_terminology_engine("sqlite://")
    init_db(engine)
    with Session(engine) as session:
        assert init_vocabularies(session) is True
        systems = session.exec(select(VocabularySystem)).all()
        assert init_vocabularies(session) is False
        assert len(session.exec(select(VocabularySystem)).all()) == len(systems)
        assert session.exec(select(VocabularyValue)).first() is not None
        assert session.exec(select(VocabularyMapping)).first() is not None


def test_mappings_load_without_session_warning():
    engine = create_terminology_engine("sqlite://")
    init_db(engine)
    with warnings.catch_warnings():
        warnings.simplefilter("error", SAWarning)
        with Session(engine) as session:
            assert init_vocabularies(session) is True
            mappings = session.exec(select(VocabularyMapping)).all()
            assert mappings
            assert all(mapping.source_value_id is not None for mapping in mappings)


def test_all_vocabulary_systems_have_unique_names():
    names = [system.name for system in all_vocabulary_systems()]
    assert len(names) == len(set(names))
    assert {"movement-type-fr", "care-mode-fr", "coverage-plan-fr", "coverage-type-fr"} <= set(names)


def test_lookup_movement_type(terminology):
    assert terminology.lookup_movement_type("A01") == "Admission en hospitalisation"
    assert terminology.lookup_movement_type("z80") == "Changement d'unité médicale responsable"
    assert terminology.lookup_movement_type("A99") is None
    assert terminology.lookup_movement_type(None) is None


def test_lookup_care_mode_translates_to_encounter_class(terminology):
    assert terminology.lookup_care_mode("HC") == {"code": "IMP", "system": CS_ACT_CODE, "display": "Hospitalisation"}
    assert terminology.lookup_care_mode("URG")["code"] == "EMER"
    assert terminology.lookup_care_mode("TLC")["code"] == "VR"
    assert terminology.lookup_care_mode("XYZ") is None
    assert terminology.lookup_care_mode("") is None


def test_lookup_coverage_type(terminology):
    amo = terminology.lookup_coverage_type("01")
    assert amo["code"] == "AMO"
    assert amo["system"] == f"{FR_CORE_CS}/fr-core-cs-coverage-type"
    assert terminology.lookup_coverage_type("CMU")["code"] == "CSS"
    # code cible transmis directement
    assert terminology.lookup_coverage_type("AME")["code"] == "AME"
    assert terminology.lookup_coverage_type("99") is None


def test_translate_pmsi_modes(terminology):
    assert terminology.translate("pmsi-mode-entree", "8") == {"code": "RD", "system": CS_ADMISSION_FR, "display": "Domicile"}
    assert terminology.translate("pmsi-mode-sortie", "9")["code"] == "DC"
    assert terminology.translate("pmsi-mode-sortie", "9", "encounter-admission-fr") is None
    assert terminology.coding("pmsi-provenance", "5") == {"code": "5", "display": "Passage par un service d'urgence"}
    assert terminology.coding("pmsi-destination", "6") == {"code": "6", "display": "Hospitalisation à domicile"}
    assert terminology.coding("pmsi-destination", "5") is None


def test_lookup_snapshot_is_read_only(terminology):
    with pytest.raises(TypeError):
        terminology._values["care-mode-fr"]["NEW"] = "x"
    assert terminology.display("care-mode-fr", "NEW") is None


def test_lookup_from_plain_mappings():
    lookup = TerminologyLookup(
        values={"local": {"A": "Alpha"}, "target": {"X": "Ex"}},
        uris={"local": None, "target": "urn:target"},
        mappings={("local", "A"): (("target", "X"),)},
    )
    assert lookup.coding("local", "A") == {"code": "A", "display": "Alpha"}
    assert lookup.translate("local", "A") == {"code": "X", "system": "urn:target", "display": "Ex"}


def test_default_terminology_is_shared():
    assert get_default_terminology() is get_default_terminology()
