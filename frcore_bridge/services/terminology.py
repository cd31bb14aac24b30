"""
Lookup en lecture seule des terminologies françaises

Contenu
- `TerminologyLookup`: instantané immuable des tables `VocabularySystem`,
    `VocabularyValue` et `VocabularyMapping`, construit une fois depuis une session.
- `lookup_movement_type`, `lookup_care_mode`, `lookup_coverage_type`: accès
    utilisés par le mapping (segments Z et IN1).
- `get_default_terminology()`: instance partagée (base SQLite initialisée au premier appel).

Notes
- Après construction, l'instantané n'est jamais modifié: lectures concurrentes sans verrou.
"""
import logging
from functools import lru_cache
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from sqlmodel import Session, select

from frcore_bridge.db import create_terminology_engine, init_db
from frcore_bridge.models_vocabulary import VocabularyMapping, VocabularySystem, VocabularyValue
from frcore_bridge.vocabulary_init import init_vocabularies

logger = logging.getLogger(__name__)

MOVEMENT_SYSTEM = "movement-type-fr"
CARE_MODE_SYSTEM = "care-mode-fr"
COVERAGE_SYSTEM = "coverage-plan-fr"
COVERAGE_TARGET_SYSTEM = "coverage-type-fr"


class TerminologyLookup:
    """Instantané immuable des vocabulaires (code court -> libellé / coding FHIR)"""

    def __init__(
        self,
        values: Mapping[str, Mapping[str, str]],
        uris: Mapping[str, Optional[str]],
        mappings: Mapping[Tuple[str, str], Tuple[Tuple[str, str], ...]],
    ):
        self._values = MappingProxyType({name: MappingProxyType(dict(codes)) for name, codes in values.items()})
        self._uris = MappingProxyType(dict(uris))
        self._mappings = MappingProxyType(dict(mappings))

    @classmethod
    def from_session(cls, session: Session) -> "TerminologyLookup":
        """Charge toutes les valeurs actives et les correspondances."""
        values: Dict[str, Dict[str, str]] = {}
        uris: Dict[str, Optional[str]] = {}
        names_by_id: Dict[int, str] = {}
        for system in session.exec(select(VocabularySystem)).all():
            names_by_id[system.id] = system.name
            uris[system.name] = system.uri
            values.setdefault(system.name, {})

        value_index: Dict[int, Tuple[str, str]] = {}
        for value in session.exec(select(VocabularyValue).where(VocabularyValue.is_active == True)).all():  # noqa: E712
            system_name = names_by_id.get(value.system_id)
            if system_name is None:
                continue
            values[system_name][value.code.upper()] = value.display
            value_index[value.id] = (system_name, value.code.upper())

        mappings: Dict[Tuple[str, str], list] = {}
        for mapping in session.exec(select(VocabularyMapping)).all():
            source = value_index.get(mapping.source_value_id)
            target_name = names_by_id.get(mapping.target_system_id)
            if source is None or target_name is None:
                continue
            mappings.setdefault(source, []).append((target_name, mapping.target_code))

        logger.info(f"Terminologies chargées: {len(values)} systèmes, {len(mappings)} correspondances")
        return cls(values, uris, {key: tuple(targets) for key, targets in mappings.items()})

    def display(self, system_name: str, code: Optional[str]) -> Optional[str]:
        if not code:
            return None
        return self._values.get(system_name, {}).get(code.strip().upper())

    def uri(self, system_name: str) -> Optional[str]:
        return self._uris.get(system_name)

    def coding(self, system_name: str, code: Optional[str]) -> Optional[Dict[str, str]]:
        """Coding {system, code, display} d'un code connu du système (None sinon)."""
        display = self.display(system_name, code)
        if display is None:
            return None
        result = {"code": code.strip(), "display": display}
        uri = self.uri(system_name)
        if uri:
            result["system"] = uri
        return result

    def translate(self, system_name: str, code: Optional[str], target_name: Optional[str] = None) -> Optional[Dict[str, str]]:
        """Coding cible via la première correspondance (filtrée par système cible)."""
        if not code:
            return None
        for target, target_code in self._mappings.get((system_name, code.strip().upper()), ()):
            if target_name and target != target_name:
                continue
            result = {"code": target_code}
            uri = self.uri(target)
            if uri:
                result["system"] = uri
            display = self.display(target, target_code)
            if display:
                result["display"] = display
            return result
        return None

    # --- Accès utilisés par le mapping ---

    def lookup_movement_type(self, code: Optional[str]) -> Optional[str]:
        """Libellé d'un type de mouvement (A01, A02, Z80...)."""
        return self.display(MOVEMENT_SYSTEM, code)

    def lookup_care_mode(self, code: Optional[str]) -> Optional[Dict[str, str]]:
        """Mode de prise en charge -> {system, code, display} (classe de venue si connue)."""
        translated = self.translate(CARE_MODE_SYSTEM, code)
        if translated is not None:
            return translated
        return self.coding(CARE_MODE_SYSTEM, code)

    def lookup_coverage_type(self, code: Optional[str]) -> Optional[Dict[str, str]]:
        """Régime / nature de couverture -> {system, code, display} FR Core."""
        translated = self.translate(COVERAGE_SYSTEM, code, COVERAGE_TARGET_SYSTEM)
        if translated is not None:
            return translated
        return self.coding(COVERAGE_TARGET_SYSTEM, code)


def load_terminology(url: Optional[str] = None) -> TerminologyLookup:
    """Initialise (si besoin) la base de vocabulaires et en prend un instantané."""
    engine = create_terminology_engine(url)
    init_db(engine)
    with Session(engine) as session:
        if init_vocabularies(session):
            logger.info("Vocabulaires initialisés")
        return TerminologyLookup.from_session(session)


@lru_cache(maxsize=1)
def get_default_terminology() -> TerminologyLookup:
    return load_terminology()
