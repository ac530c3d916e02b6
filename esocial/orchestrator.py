import hashlib
import json
import logging
import time
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, List, Optional

from .adapters.certificate import Certificate, load_certificate, transmitter_from_certificate
from .adapters.config_store import ConfigStore
from .adapters.transmission import TransmissionLibrary
from .core.envelope import build_envelope, event_group
from .core.errors import ConfigurationError, GatewayError, ValidationError, missing_field
from .core.normalizer import NormalizationContext, normalize_batch
from .schema.models import Document, Event, GatewayConfig
from .schema.orchestrator_models import GatewayEvent, GatewayResult

logger = logging.getLogger(__name__)

CertificateLoader = Callable[[str, str], Certificate]


def validate_structure(evento: Any) -> List[str]:
    """
    Checagem estrutural de /validar: só presença de tipo e dados.
    Não normaliza, não carrega certificado, não transmite.
    """
    if not isinstance(evento, dict) or not evento:
        return ["Dados do evento são obrigatórios"]
    errors = []
    if not evento.get("tipo"):
        errors.append("Tipo do evento é obrigatório")
    if not evento.get("dados"):
        errors.append("Dados do evento são obrigatórios")
    return errors


class EventGateway:
    """
    Coordenador do envio ao eSocial.
    Responsável por unir Normalizer -> Envelope -> Transmissão com trilha de auditoria.
    NÃO assina nem monta XML: isso é do colaborador de transmissão.
    """

    def __init__(
        self,
        store: ConfigStore,
        transmission: TransmissionLibrary,
        certificate_loader: CertificateLoader = load_certificate,
        future_months: int = 1,
        batch_max_events: int = 50,
        batch_workers: Optional[int] = None,
    ):
        self.store = store
        self.transmission = transmission
        self.certificate_loader = certificate_loader
        self.future_months = future_months
        self.batch_max_events = batch_max_events
        self.batch_workers = batch_workers

    def _calculate_hash(self, documents: List[Document]) -> str:
        """Gera SHA-256 determinístico dos documentos."""
        content = json.dumps(
            [doc.model_dump(mode="json") for doc in documents],
            sort_keys=True,
            ensure_ascii=False,
        ).encode("utf-8")
        return hashlib.sha256(content).hexdigest()

    @contextmanager
    def _stage(self, result: GatewayResult, stage: str, **details):
        start = time.time()
        try:
            yield details
        except GatewayError as e:
            result.events.append(GatewayEvent(
                stage=stage,
                status="FAILURE",
                details={**details, "code": e.code, "error": e.message},
                error_policy="ABORT",
            ))
            raise
        details["duration_sec"] = round(time.time() - start, 4)
        result.events.append(GatewayEvent(stage=stage, status="SUCCESS", details=details, error_policy="CONTINUE"))

    def _finish(self, result: GatewayResult) -> None:
        result.end_time = datetime.now()
        trail = ", ".join(f"{e.stage}={e.status}" for e in result.events)
        log = logger.info if result.status == "success" else logger.warning
        log("trace=%s status=%s tipos=%s etapas=[%s]", result.trace_id, result.status, result.event_types, trail)

    @staticmethod
    def _parse_event(raw: Any, require_data: bool) -> Event:
        if not isinstance(raw, dict) or not raw:
            raise missing_field("evento")
        if not raw.get("tipo"):
            raise missing_field("tipo")
        dados = raw.get("dados")
        if require_data and not dados:
            raise missing_field("dados")
        if dados is not None and not isinstance(dados, dict):
            raise ValidationError("invalid_structure", '"dados" deve ser um objeto')
        return Event(tipo=str(raw["tipo"]), dados=dados or {})

    @staticmethod
    def _check_configured(config: GatewayConfig) -> None:
        if not config.has_certificate():
            raise ConfigurationError(
                "certificate_not_configured",
                "Certificado digital não configurado. Configure o certificado antes de enviar eventos.",
            )
        if not config.empregador.nr_insc.strip():
            raise ConfigurationError(
                "employer_not_configured",
                "CNPJ/CPF do empregador não configurado. Configure os dados do empregador antes de enviar eventos.",
            )

    def _load_certificate(self, config: GatewayConfig) -> Certificate:
        return self.certificate_loader(config.certificate.pfx, config.certificate.password)

    # ====================================================
    # Envio
    # ====================================================

    def submit_event(self, evento: Any) -> GatewayResult:
        event = self._parse_event(evento, require_data=True)
        return self._submit([event])

    def submit_batch(self, eventos: Any) -> GatewayResult:
        if not isinstance(eventos, list) or not eventos:
            raise missing_field("eventos")
        if len(eventos) > self.batch_max_events:
            raise ValidationError(
                "batch_too_large",
                f"Lote com {len(eventos)} eventos excede o limite de {self.batch_max_events}",
            )
        events = [self._parse_event(raw, require_data=False) for raw in eventos]
        return self._submit(events)

    def _submit(self, events: List[Event]) -> GatewayResult:
        result = GatewayResult(
            trace_id=str(uuid.uuid4()),
            start_time=datetime.now(),
            status="error",  # Pessimista por padrão
            event_types=[event.tipo for event in events],
        )

        try:
            config = self.store.load()
            self._check_configured(config)
            employer = config.employer_context()
            ctx = NormalizationContext.for_employer(employer, self.future_months)

            # 1. NORMALIZE (tudo ou nada, nada foi enviado ainda)
            with self._stage(result, "NORMALIZE", events_count=len(events)):
                normalized = normalize_batch(events, ctx, self.batch_workers)
                groups = {event_group(event.tipo) for event in normalized}
                if len(groups) > 1:
                    raise ValidationError(
                        "mixed_event_groups",
                        "Todos os eventos do lote devem pertencer ao mesmo grupo",
                    )
            group = groups.pop()
            result.group = int(group)

            # 2. ENVELOPE
            with self._stage(result, "ENVELOPE") as details:
                certificate = self._load_certificate(config)
                transmitter = transmitter_from_certificate(certificate, config.empregador.nr_insc)
                documents = [build_envelope(event, employer, transmitter) for event in normalized]
                result.documents_hash = self._calculate_hash(documents)
                details["transmitter_kind"] = int(transmitter.kind)

            # 3. TRANSMIT
            with self._stage(result, "TRANSMIT", group=int(group)):
                result.data = self.transmission.submit_batch(group, documents, certificate, employer, transmitter)

            result.status = "success"
            return result
        finally:
            self._finish(result)

    # ====================================================
    # Consulta
    # ====================================================

    def query(self, protocolo: Optional[str]) -> GatewayResult:
        if not protocolo or not str(protocolo).strip():
            raise missing_field("protocolo")

        result = GatewayResult(trace_id=str(uuid.uuid4()), start_time=datetime.now(), status="error")
        try:
            config = self.store.load()
            if not config.has_certificate():
                raise ConfigurationError("certificate_not_configured", "Certificado digital não configurado")

            with self._stage(result, "QUERY", protocolo=str(protocolo)):
                certificate = self._load_certificate(config)
                result.data = self.transmission.query_batch(str(protocolo).strip(), certificate)

            result.status = "success"
            return result
        finally:
            self._finish(result)
