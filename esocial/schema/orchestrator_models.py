from typing import List, Optional, Dict, Literal, Any
from datetime import datetime
from pydantic import BaseModel, Field


class GatewayEvent(BaseModel):
    """
    Registro imutável de uma etapa do envio.
    Usado para trilha de auditoria; nunca carrega material do certificado.
    """
    timestamp: datetime = Field(default_factory=datetime.now)
    stage: Literal["NORMALIZE", "ENVELOPE", "TRANSMIT", "QUERY"]
    status: Literal["SUCCESS", "FAILURE"]
    # Details deve ser flat e serializável
    details: Dict[str, Any] = Field(default_factory=dict)
    error_policy: Literal["ABORT", "CONTINUE"] = "ABORT"


class GatewayResult(BaseModel):
    """
    Container final de um envio ou consulta.
    `data` é a resposta do colaborador de transmissão e só existe em sucesso.
    """
    trace_id: str
    start_time: datetime
    end_time: Optional[datetime] = None

    status: Literal["success", "error"]
    group: Optional[int] = None
    event_types: List[str] = Field(default_factory=list)

    # Audit Trail: lista ordenada de etapas
    events: List[GatewayEvent] = Field(default_factory=list)

    # SHA-256 dos documentos entregues ao transmissor
    documents_hash: Optional[str] = None

    data: Optional[Any] = None
