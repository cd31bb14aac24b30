"""
Service de mapping entre codes courts (segments HL7) et systèmes FHIR FR
"""
from typing import List, Sequence, Tuple
from sqlmodel import Session, select
from frcore_bridge.models_vocabulary import VocabularySystem, VocabularyValue, VocabularyMapping

def _create_mappings(
    session: Session,
    source_name: str,
    target_name: str,
    map_pairs: Sequence[Tuple[str, str]],
    map_type: str = "equivalent",
) -> List[VocabularyMapping]:
    """Crée les mappings (code source, code cible) entre deux systèmes déjà enregistrés."""
    mappings = []

    # Récupérer les systèmes
    source_system = session.exec(
        select(VocabularySystem).where(VocabularySystem.name == source_name)
    ).first()

    target_system = session.exec(
        select(VocabularySystem).where(VocabularySystem.name == target_name)
    ).first()

    if not source_system or not target_system:
        return []

    # chaque mapping rejoint la session dès sa création
    with session.no_autoflush:
        for source_code, target_code in map_pairs:
            source_value = session.exec(
                select(VocabularyValue).where(
                    VocabularyValue.code == source_code,
                    VocabularyValue.system_id == source_system.id,
                )
            ).first()

            if source_value:
                mapping = VocabularyMapping(
                    source_value=source_value,
                    target_system=target_system,
                    target_code=target_code,
                    map_type=map_type,
                )
                session.add(mapping)
                mappings.append(mapping)

    return mappings

def create_care_mode_mappings(session: Session) -> List[VocabularyMapping]:
    """Mode de prise en charge (ZBE-9) -> classe de venue v3-ActCode"""
    map_pairs = [
        ("HC", "IMP"),
        ("HP", "SS"),
        ("HDJ", "SS"),
        ("HDN", "SS"),
        ("HAD", "HH"),
        ("AMB", "AMB"),
        ("CS", "AMB"),
        ("URG", "EMER"),
        ("SEA", "AMB"),
        ("TLC", "VR"),
    ]
    return _create_mappings(session, "care-mode-fr", "encounter-class", map_pairs)

def create_coverage_type_mappings(session: Session) -> List[VocabularyMapping]:
    """Régime / nature de couverture (IN1) -> type de couverture FR Core"""
    map_pairs = [
        # Régimes obligatoires
        ("01", "AMO"),
        ("02", "AMO"),
        ("03", "AMO"),
        ("04", "AMO"),
        ("05", "AMO"),
        ("06", "AMO"),
        ("07", "AMO"),
        ("08", "AMO"),
        ("AMO", "AMO"),
        # Complémentaires
        ("AMC", "AMC"),
        ("MUT", "AMC"),
        ("CSS", "CSS"),
        ("CMU", "CSS"),
        ("AME", "AME"),
    ]
    return _create_mappings(session, "coverage-plan-fr", "coverage-type-fr", map_pairs)

def create_pmsi_mappings(session: Session) -> List[VocabularyMapping]:
    """Modes d'entrée / sortie PMSI (ZFM) -> TRE_R306 / TRE_R307"""
    mappings = _create_mappings(session, "pmsi-mode-entree", "encounter-admission-fr", [
        ("0", "RT"),
        ("6", "RM"),
        ("7", "RT"),
        ("8", "RD"),
        ("N", "RO"),
    ])
    mappings.extend(_create_mappings(session, "pmsi-mode-sortie", "encounter-discharge-fr", [
        ("0", "ST"),
        ("6", "SM"),
        ("7", "ST"),
        ("8", "SD"),
        ("9", "DC"),
    ]))
    return mappings

def init_vocabulary_mappings(session: Session) -> None:
    """Initialise toutes les correspondances (après la création des systèmes)"""
    create_care_mode_mappings(session)
    create_coverage_type_mappings(session)
    create_pmsi_mappings(session)
    session.commit()
