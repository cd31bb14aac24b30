"""
Service de chargement des vocabulaires français consommés par le mapping FR Core
"""
from typing import List
from frcore_bridge.models_vocabulary import VocabularySystem, VocabularyValue, VocabularySystemType
from frcore_bridge.services.fhir_fr import CS_ACT_CODE, CS_ADMISSION_FR, CS_DISCHARGE_FR, FR_CORE_CS

def create_movement_vocabularies() -> List[VocabularySystem]:
    """Crée le vocabulaire des types de mouvement (évènements PAM France)"""
    systems = []

    movement_type = VocabularySystem(
        name="movement-type-fr",
        label="Type de mouvement",
        system_type=VocabularySystemType.LOCAL,
        description="Évènements déclencheurs IHE PAM France (ZBE-6 / MSH-9)"
    )

    movement_type.values = [
        VocabularyValue(code="A01", display="Admission en hospitalisation", order=1),
        VocabularyValue(code="A02", display="Mutation", definition="Changement d'unité médicale", order=2),
        VocabularyValue(code="A03", display="Sortie définitive", order=3),
        VocabularyValue(code="A04", display="Admission externe ou urgence", order=4),
        VocabularyValue(code="A05", display="Pré-admission", order=5),
        VocabularyValue(code="A06", display="Passage d'externe à hospitalisé", order=6),
        VocabularyValue(code="A07", display="Passage d'hospitalisé à externe", order=7),
        VocabularyValue(code="A11", display="Annulation de l'admission", order=8),
        VocabularyValue(code="A12", display="Annulation de la mutation", order=9),
        VocabularyValue(code="A13", display="Annulation de la sortie", order=10),
        VocabularyValue(code="A21", display="Départ en absence provisoire", order=11),
        VocabularyValue(code="A22", display="Retour d'absence provisoire", order=12),
        VocabularyValue(code="A38", display="Annulation de la pré-admission", order=13),
        VocabularyValue(code="A52", display="Annulation du départ en absence provisoire", order=14),
        VocabularyValue(code="A53", display="Annulation du retour d'absence provisoire", order=15),
        VocabularyValue(code="A54", display="Changement de médecin responsable", order=16),
        VocabularyValue(code="A55", display="Annulation du changement de médecin responsable", order=17),
        VocabularyValue(code="Z80", display="Changement d'unité médicale responsable", order=18),
        VocabularyValue(code="Z81", display="Annulation du changement d'unité médicale", order=19),
        VocabularyValue(code="Z84", display="Changement d'unité de soins", order=20),
        VocabularyValue(code="Z85", display="Annulation du changement d'unité de soins", order=21),
        VocabularyValue(code="Z99", display="Mise à jour des informations du mouvement", order=22),
    ]
    systems.append(movement_type)

    return systems

def create_care_mode_vocabularies() -> List[VocabularySystem]:
    """Crée les vocabulaires du mode de prise en charge (mode de traitement ZBE-9)"""
    systems = []

    care_mode = VocabularySystem(
        name="care-mode-fr",
        label="Mode de prise en charge",
        system_type=VocabularySystemType.LOCAL,
        description="Mode de traitement transmis en ZBE-9"
    )
    care_mode.values = [
        VocabularyValue(code="HC", display="Hospitalisation complète", order=1),
        VocabularyValue(code="HP", display="Hospitalisation partielle", order=2),
        VocabularyValue(code="HDJ", display="Hospitalisation de jour", order=3),
        VocabularyValue(code="HDN", display="Hospitalisation de nuit", order=4),
        VocabularyValue(code="HAD", display="Hospitalisation à domicile", order=5),
        VocabularyValue(code="AMB", display="Ambulatoire", order=6),
        VocabularyValue(code="CS", display="Consultation externe", order=7),
        VocabularyValue(code="URG", display="Passage aux urgences", order=8),
        VocabularyValue(code="SEA", display="Séance", order=9),
        VocabularyValue(code="TLC", display="Téléconsultation", order=10),
    ]
    systems.append(care_mode)

    # Classe de venue FHIR (cible des correspondances)
    encounter_class = VocabularySystem(
        name="encounter-class",
        label="Classe de venue (FHIR)",
        uri=CS_ACT_CODE,
        system_type=VocabularySystemType.FHIR,
        description="Sous-ensemble v3-ActCode utilisé pour Encounter.class"
    )
    encounter_class.values = [
        VocabularyValue(code="IMP", display="Hospitalisation", definition="Séjour en hospitalisation complète", order=1),
        VocabularyValue(code="AMB", display="Ambulatoire", definition="Consultation ou venue ambulatoire", order=2),
        VocabularyValue(code="EMER", display="Urgence", definition="Passage aux urgences", order=3),
        VocabularyValue(code="HH", display="Domicile", definition="Prise en charge à domicile", order=4),
        VocabularyValue(code="SS", display="Séjour partiel", definition="Hospitalisation de jour / nuit", order=5),
        VocabularyValue(code="VR", display="Virtuelle", definition="Téléconsultation ou visite virtuelle", order=6),
        VocabularyValue(code="PRENC", display="Pré-admission", order=7),
    ]
    systems.append(encounter_class)

    return systems

def create_coverage_type_vocabularies() -> List[VocabularySystem]:
    """Crée les vocabulaires des types de couverture (IN1-2 / IN1-15)"""
    systems = []

    # Codes courts rencontrés dans les segments IN1 (régimes et natures de couverture)
    source = VocabularySystem(
        name="coverage-plan-fr",
        label="Régime / nature de couverture",
        system_type=VocabularySystemType.LOCAL,
        description="Codes de plan d'assurance transmis en IN1-2 ou IN1-15"
    )
    source.values = [
        VocabularyValue(code="01", display="Régime général", order=1),
        VocabularyValue(code="02", display="Régime agricole", order=2),
        VocabularyValue(code="03", display="Régime des indépendants", order=3),
        VocabularyValue(code="04", display="SNCF", order=4),
        VocabularyValue(code="05", display="RATP", order=5),
        VocabularyValue(code="06", display="ENIM (marins)", order=6),
        VocabularyValue(code="07", display="Mines", order=7),
        VocabularyValue(code="08", display="Militaires", order=8),
        VocabularyValue(code="AMO", display="Assurance maladie obligatoire", order=9),
        VocabularyValue(code="AMC", display="Assurance maladie complémentaire", order=10),
        VocabularyValue(code="MUT", display="Mutuelle", order=11),
        VocabularyValue(code="CSS", display="Complémentaire santé solidaire", order=12),
        VocabularyValue(code="CMU", display="Couverture maladie universelle complémentaire", order=13),
        VocabularyValue(code="AME", display="Aide médicale de l'État", order=14),
    ]
    systems.append(source)

    target = VocabularySystem(
        name="coverage-type-fr",
        label="Type de couverture (FR Core)",
        uri=f"{FR_CORE_CS}/fr-core-cs-coverage-type",
        system_type=VocabularySystemType.FHIR,
    )
    target.values = [
        VocabularyValue(code="AMO", display="Assurance Maladie Obligatoire", order=1),
        VocabularyValue(code="AMC", display="Assurance Maladie Complémentaire", order=2),
        VocabularyValue(code="CSS", display="Complémentaire Santé Solidaire", order=3),
        VocabularyValue(code="AME", display="Aide Médicale de l'État", order=4),
    ]
    systems.append(target)

    return systems

def create_pmsi_vocabularies() -> List[VocabularySystem]:
    """Crée les vocabulaires PMSI du segment ZFM et leurs cibles NOS"""
    systems = []

    mode_entree = VocabularySystem(
        name="pmsi-mode-entree",
        label="Mode d'entrée PMSI (ZFM-1)",
        system_type=VocabularySystemType.LOCAL,
    )
    mode_entree.values = [
        VocabularyValue(code="0", display="Transfert provisoire", order=1),
        VocabularyValue(code="6", display="Mutation", order=2),
        VocabularyValue(code="7", display="Transfert définitif", order=3),
        VocabularyValue(code="8", display="Domicile", order=4),
        VocabularyValue(code="N", display="Naissance", order=5),
    ]
    systems.append(mode_entree)

    mode_sortie = VocabularySystem(
        name="pmsi-mode-sortie",
        label="Mode de sortie PMSI (ZFM-2)",
        system_type=VocabularySystemType.LOCAL,
    )
    mode_sortie.values = [
        VocabularyValue(code="0", display="Transfert provisoire", order=1),
        VocabularyValue(code="6", display="Mutation", order=2),
        VocabularyValue(code="7", display="Transfert définitif", order=3),
        VocabularyValue(code="8", display="Domicile", order=4),
        VocabularyValue(code="9", display="Décès", order=5),
    ]
    systems.append(mode_sortie)

    provenance = VocabularySystem(
        name="pmsi-provenance",
        label="Provenance PMSI (ZFM-3)",
        system_type=VocabularySystemType.LOCAL,
    )
    provenance.values = [
        VocabularyValue(code="1", display="Unité de soins de courte durée (MCO)", order=1),
        VocabularyValue(code="2", display="Soins de suite et de réadaptation", order=2),
        VocabularyValue(code="3", display="Soins de longue durée", order=3),
        VocabularyValue(code="4", display="Psychiatrie", order=4),
        VocabularyValue(code="5", display="Passage par un service d'urgence", order=5),
        VocabularyValue(code="6", display="Hospitalisation à domicile", order=6),
        VocabularyValue(code="7", display="Structure d'hébergement médico-sociale", order=7),
        VocabularyValue(code="R", display="Retour de transfert provisoire", order=8),
    ]
    systems.append(provenance)

    destination = VocabularySystem(
        name="pmsi-destination",
        label="Destination PMSI (ZFM-4)",
        system_type=VocabularySystemType.LOCAL,
    )
    destination.values = [
        VocabularyValue(code="1", display="Unité de soins de courte durée (MCO)", order=1),
        VocabularyValue(code="2", display="Soins de suite et de réadaptation", order=2),
        VocabularyValue(code="3", display="Soins de longue durée", order=3),
        VocabularyValue(code="4", display="Psychiatrie", order=4),
        VocabularyValue(code="6", display="Hospitalisation à domicile", order=5),
        VocabularyValue(code="7", display="Structure d'hébergement médico-sociale", order=6),
    ]
    systems.append(destination)

    # Cibles NOS (Encounter.hospitalization)
    admission = VocabularySystem(
        name="encounter-admission-fr",
        label="Mode d'entrée (FHIR FR)",
        uri=CS_ADMISSION_FR,
        system_type=VocabularySystemType.FHIR,
        description="Types d'admission - NOS"
    )
    admission.values = [
        VocabularyValue(code="RM", display="Mutation", definition="Mouvement en provenance d'une autre unité médicale", order=1),
        VocabularyValue(code="RT", display="Transfert", definition="Transfert depuis un autre établissement", order=2),
        VocabularyValue(code="RD", display="Domicile", definition="En provenance du domicile", order=3),
        VocabularyValue(code="RO", display="Autre", definition="Autre mode d'entrée", order=4),
    ]
    systems.append(admission)

    discharge = VocabularySystem(
        name="encounter-discharge-fr",
        label="Mode de sortie (FHIR FR)",
        uri=CS_DISCHARGE_FR,
        system_type=VocabularySystemType.FHIR,
        description="Types de sortie - NOS"
    )
    discharge.values = [
        VocabularyValue(code="SM", display="Mutation", definition="Vers une autre unité médicale", order=1),
        VocabularyValue(code="ST", display="Transfert", definition="Vers un autre établissement", order=2),
        VocabularyValue(code="SD", display="Domicile", definition="Retour au domicile", order=3),
        VocabularyValue(code="DC", display="Décès", definition="Patient décédé", order=4),
        VocabularyValue(code="SO", display="Autre", definition="Autre mode de sortie", order=5),
    ]
    systems.append(discharge)

    return systems
