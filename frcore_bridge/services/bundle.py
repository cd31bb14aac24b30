"""
Assemblage du Bundle FHIR et contexte de conversion

Contenu
- `Bundle`: entrées ordonnées {fullUrl, resource, request?}, fullUrl uniques.
- `ConversionContext`: état d'une conversion (type/évènement, options, Bundle,
    terminologies, rôles -> fullUrl, avertissements).

Notes
- Les références entre ressources utilisent toujours le fullUrl (urn:uuid:<id>).
- Les rôles ("patient", "encounter", "coverage"...) désignent la ressource précise
    à enrichir ou référencer: on ne recherche jamais "la première ressource d'un type".
- Un contexte sert à une seule conversion et n'est jamais partagé.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from frcore_bridge.config import ConversionOptions
from frcore_bridge.errors import ConversionWarning, MappingError
from frcore_bridge.services.fhir_fr import clean_empty, new_id, reference

logger = logging.getLogger(__name__)


def full_url_for(resource: Dict[str, Any]) -> str:
    return f"urn:uuid:{resource['id']}"


@dataclass
class BundleEntry:
    full_url: str
    resource: Dict[str, Any]
    request: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"fullUrl": self.full_url, "resource": self.resource}
        if self.request:
            entry["request"] = self.request
        return entry


@dataclass
class Bundle:
    type: str
    timestamp: str
    id: str = field(default_factory=new_id)
    identifier: Optional[Dict[str, str]] = None
    entries: List[BundleEntry] = field(default_factory=list)

    def add(self, resource: Dict[str, Any]) -> str:
        """
        Ajoute une ressource et renvoie son fullUrl.

        Raises:
            MappingError: fullUrl déjà présent dans le Bundle
        """
        full_url = full_url_for(resource)
        if any(entry.full_url == full_url for entry in self.entries):
            raise MappingError(f"fullUrl dupliqué dans le Bundle: {full_url}")
        request = None
        if self.type == "transaction":
            request = {"method": "POST", "url": resource["resourceType"]}
        self.entries.append(BundleEntry(full_url, resource, request))
        return full_url

    def find(self, full_url: Optional[str]) -> Optional[Dict[str, Any]]:
        for entry in self.entries:
            if entry.full_url == full_url:
                return entry.resource
        return None

    def resources_of(self, resource_type: str) -> List[Dict[str, Any]]:
        return [entry.resource for entry in self.entries if entry.resource.get("resourceType") == resource_type]

    def full_urls(self) -> List[str]:
        return [entry.full_url for entry in self.entries]

    def __len__(self) -> int:
        return len(self.entries)

    def to_dict(self) -> Dict[str, Any]:
        """Document Bundle FHIR (valeurs vides supprimées)."""
        document: Dict[str, Any] = {
            "resourceType": "Bundle",
            "id": self.id,
            "type": self.type,
            "timestamp": self.timestamp,
        }
        if self.identifier:
            document["identifier"] = self.identifier
        document["entry"] = [entry.to_dict() for entry in self.entries]
        return clean_empty(document)


class ConversionContext:
    """État mutable d'une conversion (un par appel)."""

    def __init__(
        self,
        message_type: str,
        event_type: str,
        options: Optional[ConversionOptions] = None,
        terminology=None,
    ):
        self.message_type = message_type
        self.event_type = event_type
        self.options = options or ConversionOptions()
        self.terminology = terminology
        self.bundle: Optional[Bundle] = None
        self.roles: Dict[str, str] = {}
        self.warnings: List[ConversionWarning] = []

    def add(self, resource: Dict[str, Any], role: Optional[str] = None) -> str:
        """Ajoute la ressource au Bundle et, si `role` est fourni, l'enregistre sous ce rôle."""
        if self.bundle is None:
            raise MappingError(
                "Bundle non initialisé",
                message_type=self.message_type,
                event_type=self.event_type,
            )
        full_url = self.bundle.add(resource)
        if role:
            self.register(role, full_url)
        return full_url

    def register(self, role: str, full_url: str) -> None:
        if role in self.roles:
            logger.debug(f"Rôle {role} déjà attribué, conservé: {self.roles[role]}")
            return
        self.roles[role] = full_url

    def full_url(self, role: str) -> Optional[str]:
        return self.roles.get(role)

    def reference(self, role: str, display: Optional[str] = None) -> Optional[Dict[str, str]]:
        return reference(self.roles.get(role), display)

    def resource(self, role: str) -> Optional[Dict[str, Any]]:
        """Ressource enregistrée sous `role` (None si le rôle n'est pas attribué)."""
        if self.bundle is None:
            return None
        return self.bundle.find(self.roles.get(role))

    def warn(self, segment: str, field_index: int, reason: str) -> None:
        logger.warning(f"{self.message_type}^{self.event_type} {segment}-{field_index}: {reason}")
        self.warnings.append(ConversionWarning(segment, field_index, reason))

    def add_focus(self, role: str) -> None:
        """Ajoute la ressource du rôle au focus du MessageHeader (s'il existe)."""
        header = self.resource("message_header")
        ref = self.reference(role)
        if header is None or ref is None:
            return
        focus = header.setdefault("focus", [])
        if ref not in focus:
            focus.append(ref)

    @property
    def patient_reference(self) -> Optional[Dict[str, str]]:
        return self.reference("patient")

    @property
    def encounter_reference(self) -> Optional[Dict[str, str]]:
        return self.reference("encounter")

    @property
    def practitioner_reference(self) -> Optional[Dict[str, str]]:
        return self.reference("practitioner")

    @property
    def organization_reference(self) -> Optional[Dict[str, str]]:
        return self.reference("organization")
