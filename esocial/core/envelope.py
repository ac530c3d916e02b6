import logging
from typing import Any, Dict, Optional

from .errors import ValidationError
from .tax_id import IdKind, normalize_employer_tax_id
from ..schema.models import Document, EmployerContext, Event, EventGroup, EventType, TransmitterContext

logger = logging.getLogger(__name__)

SUPPORTED_EVENT_VERSIONS = ("S.1.0.0", "S.1.1.0", "S.1.2.0", "S.1.3.0")
LATEST_EVENT_VERSION = SUPPORTED_EVENT_VERSIONS[-1]

EVENT_GROUPS: Dict[str, EventGroup] = {
    EventType.S1000: EventGroup.INITIAL,
    EventType.S1005: EventGroup.INITIAL,
    EventType.S1010: EventGroup.INITIAL,
    EventType.S1020: EventGroup.INITIAL,
    EventType.S1200: EventGroup.PERIODIC,
    EventType.S2200: EventGroup.NON_PERIODIC,
    EventType.S2299: EventGroup.NON_PERIODIC,
    EventType.S2300: EventGroup.NON_PERIODIC,
}


def event_group(tipo: str) -> EventGroup:
    group = EVENT_GROUPS.get(tipo)
    if group is None:
        raise ValidationError("unknown_event_group", f"Grupo não definido para o evento: {tipo}")
    return group


def canonical_event_version(version: str) -> str:
    """
    Versões no formato antigo ("2.5.0") ou desconhecidas viram a última
    versão suportada pela biblioteca de transmissão.
    """
    value = (version or "").strip()
    if value in SUPPORTED_EVENT_VERSIONS:
        return value
    logger.warning("eventoVersion %r não reconhecida, usando %s", version, LATEST_EVENT_VERSION)
    return LATEST_EVENT_VERSION


def employer_block(employer: EmployerContext, classification: Optional[str] = None) -> Dict[str, Any]:
    ide = normalize_employer_tax_id(employer.tax_id, employer.kind, classification or employer.tax_classification)
    return {
        "tpInsc": int(employer.kind),
        "nrInsc": ide.digits,
        "nmRazao": employer.legal_name,
    }


def transmitter_block(transmitter: TransmitterContext) -> Dict[str, Any]:
    return {"tpInsc": int(transmitter.kind), "nrInsc": transmitter.tax_id}


def build_envelope(event: Event, employer: EmployerContext, transmitter: TransmitterContext) -> Document:
    """
    Junta o evento já normalizado com ambiente, versão, empregador (forma raiz)
    e transmissor (inscrição completa do certificado).
    """
    group = event_group(event.tipo)

    # S-1000 declara a própria classificação; o envelope segue a mesma regra do evento
    classification = None
    if event.tipo == EventType.S1000:
        cadastro = event.dados.get("infocadastro")
        classification = cadastro.get("classtrib") if isinstance(cadastro, dict) else None

    config = {
        "tpAmb": int(employer.environment),
        "verProc": employer.process_version,
        "eventoVersion": canonical_event_version(employer.event_schema_version),
        "serviceVersion": employer.service_version,
        "empregador": employer_block(employer, classification),
        "transmissor": transmitter_block(transmitter),
    }

    if transmitter.kind == IdKind.CNPJ and len(transmitter.tax_id) != 14:
        logger.warning("Transmissor com %d dígitos (esperado 14)", len(transmitter.tax_id))

    return Document(tipo=event.tipo, grupo=group, dados=event.dados, config=config)
