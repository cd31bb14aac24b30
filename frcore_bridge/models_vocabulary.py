"""
Tables des terminologies françaises (SQLModel)

- VocabularySystem : un système de codes (types de mouvement PAM, modes de prise en charge,
  régimes d'assurance, modes PMSI, systèmes FHIR cibles)
- VocabularyValue : code court tel qu'il apparaît dans les segments HL7 (unique par système)
- VocabularyMapping : correspondance code court -> code d'un système FHIR cible
"""
from enum import Enum
from typing import Optional, List

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field, Relationship


class VocabularySystemType(str, Enum):
    FHIR = "FHIR"      # système cible (URI FHIR)
    HL7V2 = "HL7V2"    # table HL7 v2
    LOCAL = "LOCAL"    # nomenclature française transmise en segment Z


class VocabularySystem(SQLModel, table=True):
    """Système de codes: nom technique, URI FHIR éventuelle, origine."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)  # ex: "movement-type-fr", "pmsi-mode-entree"
    label: str
    uri: Optional[str] = None  # renseignée pour les systèmes cibles
    description: Optional[str] = None
    system_type: VocabularySystemType

    values: List["VocabularyValue"] = Relationship(back_populates="system")


class VocabularyValue(SQLModel, table=True):
    """Code court d'un système et son libellé."""
    __table_args__ = (UniqueConstraint("system_id", "code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    system_id: Optional[int] = Field(default=None, foreign_key="vocabularysystem.id")
    code: str = Field(index=True)  # ex: "A01", "HC", "8"
    display: str
    definition: Optional[str] = None
    is_active: bool = True  # seules les valeurs actives entrent dans l'instantané
    order: int = 0

    system: Optional[VocabularySystem] = Relationship(back_populates="values")
    mappings: List["VocabularyMapping"] = Relationship(back_populates="source_value")


class VocabularyMapping(SQLModel, table=True):
    """Traduction d'un code court vers un code du système cible (la première l'emporte)."""
    id: Optional[int] = Field(default=None, primary_key=True)
    source_value_id: Optional[int] = Field(default=None, foreign_key="vocabularyvalue.id")
    target_system_id: Optional[int] = Field(default=None, foreign_key="vocabularysystem.id")
    target_code: str
    map_type: str = "equivalent"  # equivalent | wider | narrower

    source_value: Optional[VocabularyValue] = Relationship(back_populates="mappings")
    target_system: Optional[VocabularySystem] = Relationship()
