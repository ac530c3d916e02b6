"""
Colaborador de transmissão: assina e envia lotes ao webservice do eSocial.

O gateway só conhece o Protocol `TransmissionLibrary`. A implementação padrão
delega para um serviço externo de assinatura/transmissão via HTTP.
"""
import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx

from ..core.errors import ConfigurationError, TransmissionError
from ..schema.models import Document, EmployerContext, EventGroup, TransmitterContext
from .certificate import Certificate

logger = logging.getLogger(__name__)


class TransmissionLibrary(Protocol):
    def submit_batch(
        self,
        group: EventGroup,
        documents: List[Document],
        certificate: Certificate,
        employer: EmployerContext,
        transmitter: TransmitterContext,
    ) -> Dict[str, Any]: ...

    def query_batch(self, protocol_number: str, certificate: Certificate) -> Dict[str, Any]: ...


class HttpTransmissionClient:
    def __init__(self, base_url: Optional[str], timeout: float = 60.0, client: Optional[httpx.Client] = None):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self._client = client

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.base_url:
            raise ConfigurationError(
                "transmission_not_configured",
                "Serviço de transmissão não configurado (TRANSMISSION_URL)",
                status_code=500,
            )

        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                response = self._client.post(url, json=payload, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(url, json=payload)
        except httpx.HTTPError as e:
            logger.error("Falha de comunicação com %s: %s", url, e)
            raise TransmissionError(f"Falha de comunicação com o serviço de transmissão: {e}")

        try:
            body = response.json()
        except ValueError:
            body = {"error": response.text}

        if response.is_error:
            message = body.get("error") if isinstance(body, dict) else None
            raise TransmissionError(message or f"Serviço de transmissão respondeu HTTP {response.status_code}")
        return body

    @staticmethod
    def _credentials(certificate: Certificate) -> Dict[str, str]:
        return {"pfx": certificate.pfx_base64, "password": certificate.password}

    def submit_batch(
        self,
        group: EventGroup,
        documents: List[Document],
        certificate: Certificate,
        employer: EmployerContext,
        transmitter: TransmitterContext,
    ) -> Dict[str, Any]:
        payload = {
            "grupo": int(group),
            "tpAmb": int(employer.environment),
            "transmissor": {"tpInsc": int(transmitter.kind), "nrInsc": transmitter.tax_id},
            "eventos": [doc.model_dump(mode="json") for doc in documents],
            "certificate": self._credentials(certificate),
        }
        logger.info("Enviando lote grupo=%d com %d evento(s)", int(group), len(documents))
        return self._post("/lotes", payload)

    def query_batch(self, protocol_number: str, certificate: Certificate) -> Dict[str, Any]:
        payload = {"protocolo": protocol_number, "certificate": self._credentials(certificate)}
        return self._post("/consultas", payload)
