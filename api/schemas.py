"""
Pydantic schemas for API contracts.
Campos opcionais: a checagem de presença é feita pelo gateway,
que devolve o erro de domínio (missing_field:...) em vez de um 422 genérico.
"""
from typing import Optional, Literal, Dict, Any, List
from pydantic import BaseModel, Field


class EventoIn(BaseModel):
    tipo: Optional[str] = None
    dados: Optional[Dict[str, Any]] = None


class EventoRequest(BaseModel):
    evento: Optional[EventoIn] = None

    def as_payload(self) -> Optional[Dict[str, Any]]:
        return self.evento.model_dump(exclude_none=True) if self.evento else None


class LoteRequest(BaseModel):
    eventos: Optional[List[Dict[str, Any]]] = None


class HealthResponse(BaseModel):
    """
    Health check response.
    """
    status: Literal["ok"] = "ok"
    service: str
    version: str


class SuccessResponse(BaseModel):
    """
    Standard API response for successful operations.
    """
    success: Literal[True] = True
    data: Any = None
    trace_id: Optional[str] = None


class ValidationResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
