"""
Routeur de messages HL7 v2 vers les handlers FHIR FR Core
"""
from typing import Dict, List, Optional
import logging

from frcore_bridge.config import ConversionOptions
from frcore_bridge.errors import UnsupportedTypeError
from frcore_bridge.models_hl7 import ParsedMessage
from frcore_bridge.services.adt_handler import handle_adt_message
from frcore_bridge.services.bundle import Bundle, ConversionContext
from frcore_bridge.services.fhir_fr import CS_V2_0003, PROFILE_MESSAGE_HEADER, new_resource
from frcore_bridge.services.orm_handler import handle_orm_message
from frcore_bridge.services.siu_handler import handle_siu_message
from frcore_bridge.utils.hl7_dates import parse_hl7_datetime, to_fhir_instant
from frcore_bridge.utils.hl7_detector import MESSAGE_TYPES, MessageTypeInfo, detect_type
from frcore_bridge.utils.hl7_fields import component_text, field_text, get_field

logger = logging.getLogger(__name__)

MESSAGE_HEADER_SOURCE_ENDPOINT = "urn:frcore-bridge:hl7v2"


class MessageRouter:
    """Route les messages selon leur type (MSH-9.1)"""

    # Mapping des types vers les handlers
    HANDLERS = {
        # Admission / sortie / mutation (IHE PAM France)
        "ADT": ("adt", handle_adt_message),
        # Rendez-vous
        "SIU": ("scheduling", handle_siu_message),
        # Demandes d'examen
        "ORM": ("order", handle_orm_message),
    }

    @classmethod
    def route(
        cls,
        parsed: ParsedMessage,
        options: Optional[ConversionOptions] = None,
        context: Optional[ConversionContext] = None,
        terminology=None,
    ) -> Bundle:
        """
        Route un message parsé vers son handler et renvoie le Bundle produit.

        Args:
            parsed: Message HL7 parsé
            options: Options de conversion
            context: Contexte existant (sinon créé ici)
            terminology: Lookup des terminologies françaises

        Returns:
            Bundle assemblé

        Raises:
            MissingHeaderError: MSH ou évènement absent
            UnsupportedTypeError: aucun handler pour le type de message
        """
        options = options or ConversionOptions()
        info = detect_type(parsed.header)

        if info.message_type not in cls.HANDLERS:
            raise UnsupportedTypeError(
                f"Type de message non supporté: {info.message_type}",
                message_type=info.message_type,
                event_type=info.event_type,
                segment="MSH",
            )
        category, handler = cls.HANDLERS[info.message_type]

        if context is None:
            context = ConversionContext(info.message_type, info.event_type, options, terminology)
        for warning in parsed.warnings:
            context.warnings.append(warning)

        if not info.supported:
            # évènement inconnu pour un type connu: le handler du type s'exécute quand même
            context.warn("MSH", 9, f"évènement {info.event_type} non référencé pour {info.message_type}")

        logger.info(f"Routing {info.code} message to {category} handler")
        context.bundle = create_base_bundle(parsed, info, options, context)
        handler(parsed, context)
        return context.bundle


def create_base_bundle(
    parsed: ParsedMessage,
    info: MessageTypeInfo,
    options: ConversionOptions,
    context: ConversionContext,
) -> Bundle:
    """
    Bundle initial: id, horodatage (MSH-7), identifiant (MSH-10) et, pour un
    Bundle de type "message", MessageHeader en première entrée.
    """
    header = parsed.header
    bundle_type = options.resolved_bundle_type
    timestamp_text = field_text(header, 6)
    timestamp = to_fhir_instant(timestamp_text)
    if timestamp_text and parse_hl7_datetime(timestamp_text) is None:
        context.warn("MSH", 7, f"date du message illisible: {timestamp_text}")

    bundle = Bundle(type=bundle_type, timestamp=timestamp)
    control_id = field_text(header, 9)
    if control_id:
        bundle.identifier = {"system": "urn:ietf:rfc:3986", "value": f"urn:hl7v2:{control_id}"}
    context.bundle = bundle

    if bundle_type == "message":
        message_header = new_resource("MessageHeader", PROFILE_MESSAGE_HEADER)
        message_header["eventCoding"] = {
            "system": CS_V2_0003,
            "code": info.code,
            "display": f"{info.message_type}^{info.event_type}",
        }
        source = {
            "name": field_text(header, 2) or None,
            "software": field_text(header, 2) or None,
            "endpoint": MESSAGE_HEADER_SOURCE_ENDPOINT,
        }
        facility = component_text(get_field(header, 3), 0)
        if facility:
            source["name"] = f"{source['name']} ({facility})" if source["name"] else facility
        version = field_text(header, 11)
        if version:
            source["version"] = version
        message_header["source"] = source

        receiving_app = field_text(header, 4)
        receiving_facility = component_text(get_field(header, 5), 0)
        if receiving_app or receiving_facility:
            message_header["destination"] = [{
                "name": receiving_app or receiving_facility,
                "endpoint": f"urn:hl7v2:{receiving_app or receiving_facility}",
            }]
        message_header["focus"] = []
        context.add(message_header, "message_header")
    return bundle


def route(
    parsed: ParsedMessage,
    options: Optional[ConversionOptions] = None,
    context: Optional[ConversionContext] = None,
    terminology=None,
) -> Bundle:
    return MessageRouter.route(parsed, options, context, terminology)


def supported_message_types() -> List[str]:
    return sorted(MessageRouter.HANDLERS)


def describe_message_type(message_type: str) -> Optional[Dict]:
    """Capacités d'un type: évènements, segments exploités et ressources produites."""
    known = MESSAGE_TYPES.get(message_type.upper())
    if known is None:
        return None
    return {
        "message_type": message_type.upper(),
        "label": known["label"],
        "events": list(known["events"]),
        "segments": list(known["segments"]),
        "resources": list(known["resources"]),
        "handled": message_type.upper() in MessageRouter.HANDLERS,
    }
