"""Test fixtures"""
import sys
from pathlib import Path

import pytest

# Ensure repository root is on sys.path so `import frcore_bridge` works when running pytest from VS Code or terminals
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from frcore_bridge.converter import convert
from frcore_bridge.services.terminology import load_terminology

from helpers import default_msh, fake_nir, message, segment


@pytest.fixture(name="terminology", scope="session")
def terminology_fixture():
    """Terminologies françaises chargées depuis une base SQLite en mémoire."""
    return load_terminology("sqlite://")


@pytest.fixture(name="run")
def run_fixture(terminology):
    """Convertit un message avec les terminologies de test."""
    def _run(raw, **options):
        return convert(raw, options or None, terminology=terminology)
    return _run


@pytest.fixture(name="nir")
def nir_fixture():
    return fake_nir()


@pytest.fixture(name="adt_a01")
def adt_a01_fixture(nir):
    """Admission avec INS + IPP, deux noms, adresse et lieu de naissance, médecins PV1 et ROL."""
    return message(
        default_msh("ADT^A01^ADT_A01", "MSG0001", f18="8859/15"),
        segment("EVN", {1: "A01", 2: "20250115103000", 6: "20250115100000"}),
        segment("PID", {
            1: "1",
            3: f"{nir}^^^ASIP-SANTE-INS-NIR&1.2.250.1.213.1.4.8&ISO^INS"
               "~IPP001^^^HOPITAL&1.2.250.1.71.4.2.7&ISO^PI",
            5: "DUPONT^JEAN^PIERRE^^^^L~MARTIN^JEAN^^^^^D",
            7: "19800101",
            8: "M",
            11: "12 RUE DE LA PAIX^^PARIS (75056)^^75001^FRA^H~^^LYON^^69001^FRA^BDL",
            13: "0601020304^PRN^CP~^NET^Internet^jean.dupont@example.fr",
            14: "0145454545^WPN^PH",
            16: "M",
            32: "VALI",
        }),
        segment("PV1", {
            1: "1",
            2: "I",
            3: "CARDIO^101^A^HOPITAL",
            4: "R",
            7: "10000000001^MARTIN^SOPHIE^^^DR^^^RPPS",
            17: "10000000001^MARTIN^SOPHIE",
            19: "VN0001^^^HOPITAL^VN",
            44: "20250115103000",
        }),
        segment("ROL", {1: "1", 2: "AD", 3: "FHCP", 4: "10000000001^MARTIN^SOPHIE"}),
    )


@pytest.fixture(name="adt_a04_fr")
def adt_a04_fr_fixture():
    """Venue externe avec segments Z français, NK1, IN1, ROL, OBX et un segment Z inconnu."""
    return message(
        default_msh("ADT^A04^ADT_A01", "MSG0002", f7="20250201080000"),
        segment("EVN", {1: "A04", 2: "20250201080000"}),
        segment("PID", {
            1: "1",
            3: "IPP777^^^HOPITAL^PI",
            5: "LEROY^CLAIRE^^^^^L",
            7: "19920312",
            8: "F",
            32: "VALI",
        }),
        segment("NK1", {1: "1", 2: "LEROY^PAUL", 3: "SPO^Conjoint", 5: "0611223344"}),
        segment("PV1", {
            1: "1",
            2: "O",
            3: "URG^^^HOPITAL",
            19: "VN0002^^^HOPITAL^VN",
            44: "20250201080000",
        }),
        segment("PV2", {3: "^Douleur thoracique", 9: "20250203120000"}),
        segment("ROL", {1: "1", 2: "AD", 3: "RP", 4: "123456789^BERNARD^LUC"}),
        segment("OBX", {1: "1", 2: "NM", 3: "29463-7^Poids^LN", 5: "72.5", 6: "kg", 11: "F"}),
        segment("IN1", {
            1: "1",
            2: "01",
            3: "CPAM75^^^CPAM&1.2.250.1.213.1.1.1&ISO",
            4: "CPAM DE PARIS",
            12: "20250101",
            13: "20251231",
            17: "SEL",
            36: "1920375123456",
        }),
        segment("ZBE", {
            1: "MVT001^HOPITAL^1.2.250.1.71.4.2.7^ISO",
            2: "20250201080000",
            4: "INSERT",
            5: "N",
            7: "UF URGENCES^^^^^^^^^UF001",
            9: "URG",
        }),
        segment("ZFP", {1: "41", 2: "46"}),
        segment("ZFV", {1: "750712184", 2: "20241201", 3: "SMUR"}),
        segment("ZFM", {1: "8", 3: "5"}),
        segment("ZFD", {3: "O", 7: "CN"}),
        segment("ZFI", {1: "O", 2: "ALD^Affection longue duree", 3: "20251231"}),
        segment("ZZZ", {1: "inconnu"}),
    )


@pytest.fixture(name="adt_a40")
def adt_a40_fixture():
    """Fusion de patients: MRG-1 porte l'IPP absorbé."""
    return message(
        default_msh("ADT^A40^ADT_A39", "MSG0003"),
        segment("EVN", {1: "A40", 2: "20250115103000"}),
        segment("PID", {1: "1", 3: "IPP100^^^HOPITAL^PI", 5: "DURAND^ALICE"}),
        segment("MRG", {1: "IPP200^^^HOPITAL&1.2.250.1.71.4.2.7&ISO^PI"}),
    )


@pytest.fixture(name="siu_s12")
def siu_s12_fixture():
    """Nouveau rendez-vous: prestation (AIS), lieu (AIL) et intervenant (AIP)."""
    return message(
        default_msh("SIU^S12^SIU_S12", "MSG0004"),
        segment("SCH", {
            1: "RDV001^HOPITAL^1.2.250.1.71.4.2.7^ISO",
            2: "RDV001F",
            7: "CONSULT^Consultation de suivi",
            8: "NORMAL^Routine",
            9: "30",
            10: "MIN",
            11: "^^^20250310140000",
        }),
        segment("PID", {1: "1", 3: "IPP300^^^HOPITAL^PI", 5: "PETIT^LOUIS"}),
        segment("AIS", {1: "1", 3: "CARDIO^Consultation cardiologie", 4: "20250310140000", 7: "45", 8: "MIN"}),
        segment("AIL", {1: "1", 3: "CARDIO^201^^HOPITAL"}),
        segment("AIP", {1: "1", 3: "10000000002^LEGRAND^PAUL"}),
    )


@pytest.fixture(name="orm_o01")
def orm_o01_fixture():
    """Deux demandes (ORC/OBR), un résultat OBX rattaché à la première."""
    return message(
        default_msh("ORM^O01^ORM_O01", "MSG0005"),
        segment("PID", {1: "1", 3: "IPP400^^^HOPITAL^PI", 5: "MOREAU^EMMA"}),
        segment("ORC", {1: "NW", 2: "CMD001", 9: "20250320090000", 12: "10000000003^FAURE^ANNE"}),
        segment("OBR", {
            1: "1",
            2: "CMD001",
            4: "NFS^Numeration formule sanguine^LOCAL",
            5: "S",
            7: "20250320100000",
            13: "Patient a jeun",
        }),
        segment("OBX", {1: "1", 2: "NM", 3: "HB^Hemoglobine^LOCAL", 5: "13.5", 6: "g/dL", 11: "F"}),
        segment("ORC", {1: "NW", 2: "CMD002", 12: "10000000003^FAURE^ANNE"}),
        segment("OBR", {1: "2", 2: "CMD002", 4: "GLY^Glycemie^LOCAL", 27: "^^^^^A"}),
    )
