"""
FastAPI application entry point.
Handles eSocial submissions with strict separation of concerns:
- API parses input and dispatches
- EventGateway makes all business decisions
- Errors leave the domain as GatewayError and become JSON here
"""
import logging
from typing import Annotated, Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from esocial_config import settings, configure_logging
from esocial.adapters.config_store import ConfigStore
from esocial.core.errors import GatewayError
from esocial.orchestrator import EventGateway, validate_structure
from api.schemas import EventoRequest, HealthResponse, LoteRequest, SuccessResponse, ValidationResponse
from api.dependencies import get_config_store, get_gateway

configure_logging(settings)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Gateway HTTP para envio de eventos ao eSocial",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)

Gateway = Annotated[EventGateway, Depends(get_gateway)]


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message, **extra})


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    return HealthResponse(service=settings.APP_NAME, version=settings.APP_VERSION)


@app.get("/config", tags=["Config"])
def get_config(store: Annotated[ConfigStore, Depends(get_config_store)]):
    """Configuração atual; a senha do certificado nunca sai daqui."""
    return store.load().redacted()


@app.post("/config", tags=["Config"])
def save_config(
    store: Annotated[ConfigStore, Depends(get_config_store)],
    data: Annotated[Optional[Dict[str, Any]], Body()] = None,
):
    store.update(data or {})
    return {"success": True, "message": "Configuração salva com sucesso"}


@app.post("/eventos", response_model=SuccessResponse, tags=["Eventos"])
def send_event(gateway: Gateway, body: Optional[EventoRequest] = None):
    """
    Normaliza, envelopa e envia um único evento.

    **Exemplo:**
    ```bash
    curl -X POST http://localhost:3000/eventos \\
      -H 'Content-Type: application/json' \\
      -d '{"evento": {"tipo": "S-1000", "dados": {...}}}'
    ```
    """
    result = gateway.submit_event(body.as_payload() if body else None)
    return SuccessResponse(data=result.data, trace_id=result.trace_id)


@app.get("/eventos", response_model=SuccessResponse, tags=["Eventos"])
def query_event(gateway: Gateway, protocolo: Optional[str] = None):
    result = gateway.query(protocolo)
    return SuccessResponse(data=result.data, trace_id=result.trace_id)


@app.post("/lotes", response_model=SuccessResponse, tags=["Lotes"])
def send_batch(gateway: Gateway, body: Optional[LoteRequest] = None):
    """Lote tudo-ou-nada: todos do mesmo grupo, um único envio."""
    result = gateway.submit_batch(body.eventos if body else None)
    return SuccessResponse(data=result.data, trace_id=result.trace_id)


@app.get("/lotes", response_model=SuccessResponse, tags=["Lotes"])
def query_batch(gateway: Gateway, protocolo: Optional[str] = None):
    result = gateway.query(protocolo)
    return SuccessResponse(data=result.data, trace_id=result.trace_id)


@app.post("/validar", response_model=ValidationResponse, tags=["Eventos"])
def validate_event(body: Optional[EventoRequest] = None):
    """Só presença de tipo/dados. Não carrega certificado nem transmite."""
    errors = validate_structure(body.as_payload() if body else None)
    if errors:
        return _error(status.HTTP_400_BAD_REQUEST, "Erros de validação: " + ", ".join(errors), errors=errors)
    return ValidationResponse(success=True, message="Evento válido")


# ====================================================
# Exception handlers
# ====================================================

@app.exception_handler(GatewayError)
async def gateway_exception_handler(request: Request, exc: GatewayError):
    if exc.status_code >= 500:
        logger.error("%s %s falhou: %s (%s)", request.method, request.url.path, exc.message, exc.code)
    else:
        logger.warning("%s %s rejeitado: %s", request.method, request.url.path, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    ## 405 também é "rota não encontrada": rota = caminho + método
    if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
        return _error(status.HTTP_404_NOT_FOUND, "route not found")
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()]
    return _error(status.HTTP_400_BAD_REQUEST, "Requisição inválida", errors=errors)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler for unexpected errors.
    """
    logger.exception("Erro inesperado em %s %s", request.method, request.url.path)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc) or "Erro interno no servidor")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG
    )
