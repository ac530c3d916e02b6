"""
Leitura do certificado digital A1 (PKCS#12 em base64).
A assinatura em si fica com a biblioteca de transmissão.
"""
import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from ..core.errors import ConfigurationError
from ..core.tax_id import only_digits, transmitter_identifier
from ..schema.models import TransmitterContext

logger = logging.getLogger(__name__)

# ICP-Brasil: CN = "RAZAO SOCIAL:12345678000190" (e-CNPJ) ou "NOME:12345678901" (e-CPF)
CN_TAX_ID_PATTERN = re.compile(r":(\d{14}|\d{11})\s*$")


@dataclass(frozen=True)
class Certificate:
    pfx_base64: str = field(repr=False)
    password: str = field(repr=False)
    subject_cn: str
    tax_id: Optional[str]
    not_valid_after: Optional[datetime] = None


def _subject_cn(cert) -> str:
    attrs = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    return attrs[0].value if attrs else ""


def load_certificate(pfx_base64: str, password: str) -> Certificate:
    """Falha com ConfigurationError em base64 inválido ou senha/arquivo inválidos."""
    try:
        pfx = base64.b64decode(pfx_base64, validate=True)
    except (binascii.Error, ValueError):
        raise ConfigurationError(
            "invalid_certificate_encoding",
            "Erro ao decodificar certificado. Verifique se está em formato base64 válido.",
            status_code=500,
        )

    try:
        _key, cert, _chain = pkcs12.load_key_and_certificates(pfx, password.encode("utf-8"))
    except ValueError as e:
        raise ConfigurationError(
            "invalid_certificate",
            f"Erro ao carregar certificado: {e}",
            status_code=500,
        )

    if cert is None:
        raise ConfigurationError("invalid_certificate", "Arquivo PFX sem certificado", status_code=500)

    cn = _subject_cn(cert)
    m = CN_TAX_ID_PATTERN.search(cn)
    return Certificate(
        pfx_base64=pfx_base64,
        password=password,
        subject_cn=cn,
        tax_id=m.group(1) if m else None,
        not_valid_after=getattr(cert, "not_valid_after_utc", None),
    )


def transmitter_from_certificate(certificate: Certificate, fallback_tax_id: str = "") -> TransmitterContext:
    """
    O transmissor precisa ter a mesma inscrição do certificado, completa.
    Sem inscrição no CN usa a do empregador como foi salva (sem truncar).
    """
    raw = certificate.tax_id or only_digits(fallback_tax_id)
    if not raw:
        raise ConfigurationError(
            "missing_transmitter",
            "Não foi possível determinar o CNPJ/CPF do transmissor",
        )
    if not certificate.tax_id:
        logger.warning("Certificado sem inscrição no CN, usando a do empregador para o transmissor")

    ident = transmitter_identifier(raw)
    return TransmitterContext(kind=ident.kind, tax_id=ident.digits)
