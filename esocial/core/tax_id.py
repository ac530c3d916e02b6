import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Union

from .errors import ValidationError

# Classificações tributárias de entes públicos (administração direta, autarquias,
# fundações, etc). Para elas o eSocial identifica o empregador pelo CNPJ completo.
PUBLIC_ENTITY_CLASSIFICATIONS = frozenset(f"{code:02d}" for code in range(21, 34))

CNPJ_ROOT_LENGTH = 8
CNPJ_FULL_LENGTH = 14
CPF_LENGTH = 11


class IdKind(IntEnum):
    """Tipo de inscrição (tpInsc) do layout eSocial."""
    CNPJ = 1
    CPF = 2
    CAEPF = 3
    CNO = 4


@dataclass(frozen=True)
class TaxIdentifier:
    kind: IdKind
    digits: str

    def __str__(self) -> str:
        return self.digits


def only_digits(raw: Union[str, int, None]) -> str:
    if raw is None:
        return ""
    return re.sub(r"\D", "", str(raw))


def as_kind(value: Union[str, int, IdKind, None], default: IdKind = IdKind.CNPJ) -> IdKind:
    """Converte tpInsc vindo do JSON ("1", 1, 1.0) para IdKind."""
    if value is None or value == "":
        return default
    try:
        return IdKind(int(value))
    except (TypeError, ValueError):
        raise ValidationError("invalid_tax_id_kind", f"Tipo de inscrição inválido: {value!r}")


def normalize_classification(code: Union[str, int, None]) -> Optional[str]:
    """classTrib sempre como string de 2 dígitos ("1" -> "01"); None se ausente."""
    if code is None:
        return None
    digits = only_digits(code)
    if not digits:
        return None
    return digits.zfill(2)


def _root_or_pad(digits: str) -> str:
    if len(digits) >= CNPJ_ROOT_LENGTH:
        return digits[:CNPJ_ROOT_LENGTH]
    return digits.zfill(CNPJ_ROOT_LENGTH)


def _full_or_pad(digits: str) -> str:
    if len(digits) >= CNPJ_FULL_LENGTH:
        return digits[:CNPJ_FULL_LENGTH]
    return digits.zfill(CNPJ_FULL_LENGTH)


def normalize_cpf(raw: Union[str, int]) -> TaxIdentifier:
    digits = only_digits(raw)
    if len(digits) != CPF_LENGTH:
        raise ValidationError(
            "invalid_cpf_length",
            f"CPF deve ter {CPF_LENGTH} dígitos (recebido {len(digits)})",
        )
    return TaxIdentifier(IdKind.CPF, digits)


def normalize_employer_tax_id(
    raw: Union[str, int],
    kind: IdKind,
    classification_code: Optional[Union[str, int]] = None,
) -> TaxIdentifier:
    """
    Formata a inscrição do empregador (ideEmpregador.nrInsc).

    CNPJ: raiz de 8 dígitos, exceto para classificações de ente público
    (21 a 33), que usam o CNPJ completo de 14 dígitos.
    CPF: exatamente 11 dígitos.
    """
    digits = only_digits(raw)

    if kind == IdKind.CPF:
        return normalize_cpf(digits)

    if kind == IdKind.CNPJ:
        if normalize_classification(classification_code) in PUBLIC_ENTITY_CLASSIFICATIONS:
            return TaxIdentifier(IdKind.CNPJ, _full_or_pad(digits))
        return TaxIdentifier(IdKind.CNPJ, _root_or_pad(digits))

    return TaxIdentifier(kind, digits)


def normalize_establishment_tax_id(raw: Union[str, int], kind: IdKind) -> TaxIdentifier:
    """
    Formata a inscrição do estabelecimento/lotação (S-1200 ideestablot.nrinsc).

    O schema do servidor exige o CNPJ com 14 dígitos aqui: uma raiz de 8 dígitos
    é completada com zeros à direita, valores maiores são truncados em 14 e os
    demais completados com zeros à esquerda.
    """
    digits = only_digits(raw)

    if kind == IdKind.CPF:
        return normalize_cpf(digits)

    if kind == IdKind.CNPJ:
        if len(digits) == CNPJ_ROOT_LENGTH:
            return TaxIdentifier(IdKind.CNPJ, digits.ljust(CNPJ_FULL_LENGTH, "0"))
        return TaxIdentifier(IdKind.CNPJ, _full_or_pad(digits))

    return TaxIdentifier(kind, digits)


def transmitter_identifier(raw: Union[str, int]) -> TaxIdentifier:
    """Inscrição do transmissor: nunca truncada. 11 dígitos = CPF, demais = CNPJ."""
    digits = only_digits(raw)
    kind = IdKind.CPF if len(digits) == CPF_LENGTH else IdKind.CNPJ
    return TaxIdentifier(kind, digits)
