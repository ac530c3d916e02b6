"""
Taxonomia de erros do gateway.
Todo erro carrega um `code` estável (usado pelos clientes e pelos testes)
e uma mensagem legível em português.
"""
from typing import Optional


class GatewayError(Exception):
    """Base de todos os erros tratados na fronteira HTTP."""

    status_code: int = 500

    def __init__(self, code: str, message: Optional[str] = None, status_code: Optional[int] = None):
        self.code = code
        self.message = message or code
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code}


class ValidationError(GatewayError):
    """Campo ausente ou malformado, tipo de evento não suportado, grupo não mapeado."""

    status_code = 400


class ConfigurationError(GatewayError):
    """Certificado ou empregador ainda não configurados (ou configuração ilegível)."""

    status_code = 400


class TransmissionError(GatewayError):
    """Falha do colaborador de transmissão: assinatura, rede ou rejeição do governo."""

    status_code = 500

    def __init__(self, message: str, code: str = "transmission_failed"):
        super().__init__(code, message)


def missing_field(name: str, path: Optional[str] = None) -> ValidationError:
    """Atalho para `missing_field:<name>`; `path` é o caminho no layout eSocial."""
    where = path or name
    return ValidationError(f"missing_field:{name}", f'O campo "{where}" é obrigatório')
