"""
Initialisation des vocabulaires français et de leurs correspondances
"""
from typing import List
from sqlmodel import Session, select
from frcore_bridge.models_vocabulary import VocabularySystem
from frcore_bridge.services.vocabulary_fr import (
    create_movement_vocabularies,
    create_care_mode_vocabularies,
    create_coverage_type_vocabularies,
    create_pmsi_vocabularies,
)
from frcore_bridge.services.vocabulary_mappings import init_vocabulary_mappings

def all_vocabulary_systems() -> List[VocabularySystem]:
    """Liste de tous les systèmes (non persistés) avec leurs valeurs"""
    all_systems = []
    all_systems.extend(create_movement_vocabularies())
    all_systems.extend(create_care_mode_vocabularies())
    all_systems.extend(create_coverage_type_vocabularies())
    all_systems.extend(create_pmsi_vocabularies())
    return all_systems

def init_vocabularies(session: Session) -> bool:
    """Initialise toutes les listes de valeurs (sans effet si déjà présentes).

    Returns:
        True si les vocabulaires ont été créés, False s'ils existaient déjà
    """
    if session.exec(select(VocabularySystem)).first() is not None:
        return False

    # Sauvegarder tous les systèmes et leurs valeurs
    for system in all_vocabulary_systems():
        session.add(system)

    session.commit()

    # Initialiser les mappings entre vocabulaires
    # Note: doit être fait après la création des systèmes car utilise leurs IDs
    init_vocabulary_mappings(session)
    return True
