import re
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Union

from .errors import ValidationError

Number = Union[int, float]

# Pontos como separador de milhar, sem vírgula: "1.500", "1.234.567"
THOUSANDS_PATTERN = re.compile(r"-?\d{1,3}(\.\d{3})+")


def parse_amount(value: Any, field_name: str) -> Number:
    """
    Converte valores monetários/quantidades vindos do cliente para número.

    Aceita números JSON e strings nos formatos BR ("1.234,56", "400,00", "1.500")
    e US/JSON ("1234.56"). Símbolo "R$" e espaços são ignorados.
    """
    if isinstance(value, bool):
        raise ValidationError(f"invalid_amount:{field_name}", f'Valor inválido em "{field_name}": {value!r}')
    if isinstance(value, (int, float)):
        return value

    text = str(value).replace("R$", "").replace(" ", "").strip()

    # BR: 1.500,00 | 1.500 | US: 1500.00
    if "," in text and "." in text:
        text = text.replace(".", "").replace(",", ".")
    elif THOUSANDS_PATTERN.fullmatch(text):
        text = text.replace(".", "")
    elif "," in text:
        text = text.replace(",", ".")

    if not re.fullmatch(r"-?\d+(\.\d+)?", text):
        raise ValidationError(f"invalid_amount:{field_name}", f'Valor inválido em "{field_name}": "{value}"')

    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise ValidationError(f"invalid_amount:{field_name}", f'Valor inválido em "{field_name}": "{value}"')

    if amount == amount.to_integral_value() and "." not in text:
        return int(amount)
    return float(amount)


def coerce_indicator(value: Any, allowed: Iterable[int], default: int) -> int:
    """
    Indicadores de enumeração fechada (0/1/2...): converte para int e troca
    valores fora do domínio pelo padrão documentado, sem rejeitar.
    """
    if value is None or value == "" or isinstance(value, bool):
        return default
    if isinstance(value, float):
        if not value.is_integer():
            return default
        value = int(value)
    try:
        coerced = int(str(value).strip())
    except ValueError:
        return default
    return coerced if coerced in set(allowed) else default


def coerce_amounts(node: dict, fields: Iterable[str]) -> None:
    """Aplica parse_amount in place nos campos presentes e não vazios."""
    for field in fields:
        if field in node and node[field] not in (None, ""):
            node[field] = parse_amount(node[field], field)
