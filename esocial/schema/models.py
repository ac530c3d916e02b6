from enum import IntEnum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.tax_id import IdKind, as_kind, normalize_classification


class EventType:  ##     Códigos de evento suportados
    S1000 = "S-1000"
    S1005 = "S-1005"
    S1010 = "S-1010"
    S1020 = "S-1020"
    S1200 = "S-1200"
    S2200 = "S-2200"
    S2299 = "S-2299"
    S2300 = "S-2300"


class EventGroup(IntEnum):
    """Canal de envio do lote: 1 = iniciais/tabelas, 2 = não periódicos, 3 = periódicos."""
    INITIAL = 1
    NON_PERIODIC = 2
    PERIODIC = 3


class Environment(IntEnum):  ##     tpAmb
    PRODUCTION = 1
    STAGING = 2


class Event(BaseModel):
    """Evento como chega do cliente: {tipo, dados}."""
    tipo: str
    dados: Dict[str, Any] = Field(default_factory=dict)


class EmployerConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    tp_insc: int = Field(default=1, alias="tpInsc")
    nr_insc: str = Field(default="", alias="nrInsc")
    nm_razao: str = Field(default="", alias="nmRazao")
    class_trib: Optional[str] = Field(default=None, alias="classTrib")

    @field_validator("nr_insc", mode="before")
    @classmethod
    def coerce_nr_insc(cls, v):
        return "" if v is None else str(v)

    @field_validator("class_trib", mode="before")
    @classmethod
    def coerce_class_trib(cls, v):
        return normalize_classification(v)


class CertificateConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    pfx: str = ""
    password: str = ""


class GatewayConfig(BaseModel):
    """
    Documento persistido em config.json (mesmo layout do serviço legado).
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    tp_amb: Environment = Field(default=Environment.STAGING, alias="tpAmb")
    ver_proc: str = Field(default="SISTEMA-RH-1.0", alias="verProc")
    evento_version: str = Field(default="S.1.3.0", alias="eventoVersion")
    service_version: str = Field(default="1.5.0", alias="serviceVersion")
    empregador: EmployerConfig = Field(default_factory=EmployerConfig)
    certificate: CertificateConfig = Field(default_factory=CertificateConfig)

    def employer_context(self) -> "EmployerContext":
        return EmployerContext(
            kind=as_kind(self.empregador.tp_insc),
            tax_id=self.empregador.nr_insc,
            legal_name=self.empregador.nm_razao or "Empresa",
            tax_classification=self.empregador.class_trib,
            environment=self.tp_amb,
            event_schema_version=self.evento_version,
            process_version=self.ver_proc,
            service_version=self.service_version,
        )

    def has_certificate(self) -> bool:
        return bool(self.certificate.pfx and self.certificate.password)

    def redacted(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True, mode="json")
        data["certificate"]["password"] = "***"
        return data


class EmployerContext(BaseModel):
    """Identificação do empregador vinda da configuração (tax_id como salvo, sem truncar)."""
    model_config = ConfigDict(frozen=True)

    kind: IdKind = IdKind.CNPJ
    tax_id: str
    legal_name: str = "Empresa"
    tax_classification: Optional[str] = None
    environment: Environment = Environment.STAGING
    event_schema_version: str = "S.1.3.0"
    process_version: str = "SISTEMA-RH-1.0"
    service_version: str = "1.5.0"


class TransmitterContext(BaseModel):
    """Transmissor: inscrição completa do certificado. Nunca truncada."""
    model_config = ConfigDict(frozen=True)

    kind: IdKind
    tax_id: str


class Document(BaseModel):
    """Evento normalizado + contexto, pronto para a biblioteca de transmissão assinar."""
    tipo: str
    grupo: EventGroup
    dados: Dict[str, Any]
    config: Dict[str, Any]
