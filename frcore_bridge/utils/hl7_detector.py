"""
HL7 message type detector - identifies message type and trigger event from the MSH segment.

Supports:
- ADT (Admission/Discharge/Transfer, IHE PAM France)
- SIU (Scheduling)
- ORM (Orders)
"""
import re
from dataclasses import dataclass, asdict
from typing import Dict, Optional

from frcore_bridge.errors import MissingHeaderError
from frcore_bridge.models_hl7 import Segment
from frcore_bridge.utils.hl7_fields import field_text, get_field, text


# Table des types reconnus: évènements, segments exploités, ressources produites
MESSAGE_TYPES: Dict[str, Dict] = {
    "ADT": {
        "label": "Admission / Discharge / Transfer",
        "events": ["A01", "A02", "A03", "A04", "A05", "A08", "A11", "A13", "A28", "A31", "A40"],
        "segments": ["MSH", "EVN", "PID", "PD1", "MRG", "NK1", "PV1", "PV2", "ROL", "OBX", "IN1",
                     "ZBE", "ZFP", "ZFV", "ZFM", "ZFD", "ZFI"],
        "resources": ["MessageHeader", "Patient", "Encounter", "Location", "Organization",
                      "Practitioner", "PractitionerRole", "RelatedPerson", "Coverage", "Observation"],
    },
    "SIU": {
        "label": "Scheduling Information Unsolicited",
        "events": ["S12", "S13", "S14", "S15", "S16", "S17", "S26"],
        "segments": ["MSH", "SCH", "PID", "AIS", "AIL", "AIP"],
        "resources": ["MessageHeader", "Patient", "Appointment", "Schedule", "Location",
                      "Practitioner", "Organization"],
    },
    "ORM": {
        "label": "General Order Message",
        "events": ["O01", "O02", "O03"],
        "segments": ["MSH", "PID", "ORC", "OBR", "OBX"],
        "resources": ["MessageHeader", "Patient", "ServiceRequest", "Observation",
                      "Practitioner", "Organization"],
    },
}

_EVENT_CODE = re.compile(r"^[A-Z0-9]{3}$")

# MSH-n est à l'index n-1 (découpage littéral de la ligne MSH)
MSH_INDEX = {
    "sending_app": 2,
    "sending_facility": 3,
    "receiving_app": 4,
    "receiving_facility": 5,
    "timestamp": 6,
    "message_type": 8,
    "message_control_id": 9,
    "processing_id": 10,
    "version_id": 11,
    "charset": 17,
}


@dataclass(frozen=True)
class MessageTypeInfo:
    message_type: str
    event_type: str
    structure: str
    supported: bool

    @property
    def code(self) -> str:
        """Code composite "<type>_<event>" (MessageHeader.eventCoding)."""
        return f"{self.message_type}_{self.event_type}"

    def to_dict(self) -> Dict:
        return asdict(self)


class HL7Detector:
    """Detects HL7 message type and trigger event from a parsed MSH segment"""

    @staticmethod
    def parse_msh_fields(header: Optional[Segment]) -> Dict[str, str]:
        """
        Texte des principaux champs MSH.

        Returns:
            dict with keys: sending_app, sending_facility, receiving_app,
            receiving_facility, timestamp, message_type, message_control_id,
            processing_id, version_id, charset
        """
        if header is None or text(get_field(header, 0)) != "MSH":
            return {}
        return {name: field_text(header, index) for name, index in MSH_INDEX.items()}

    @staticmethod
    def detect_type(header: Optional[Segment]) -> MessageTypeInfo:
        """
        Identifie le type (MSH-9.1), l'évènement (MSH-9.2) et la structure (MSH-9.3).

        Raises:
            MissingHeaderError: MSH absent, ou évènement absent / illisible
        """
        if header is None or text(get_field(header, 0)) != "MSH":
            raise MissingHeaderError("Segment MSH absent: type de message indéterminable", segment="MSH")

        message_type = field_text(header, MSH_INDEX["message_type"], 0).upper()
        event_type = field_text(header, MSH_INDEX["message_type"], 1).upper()
        structure = field_text(header, MSH_INDEX["message_type"], 2).upper()

        if not message_type:
            raise MissingHeaderError("MSH-9 vide: type de message absent", segment="MSH")
        if not event_type:
            raise MissingHeaderError(
                "MSH-9.2 vide: évènement déclencheur absent",
                message_type=message_type,
                segment="MSH",
            )
        if not _EVENT_CODE.match(event_type):
            raise MissingHeaderError(
                f"Évènement déclencheur illisible: {event_type!r}",
                message_type=message_type,
                segment="MSH",
            )

        known = MESSAGE_TYPES.get(message_type)
        return MessageTypeInfo(
            message_type=message_type,
            event_type=event_type,
            structure=structure or f"{message_type}_{event_type}",
            supported=bool(known) and event_type in known["events"],
        )


def detect_type(header: Optional[Segment]) -> MessageTypeInfo:
    return HL7Detector.detect_type(header)
