import logging
import re
from datetime import date
from typing import NamedTuple, Optional

from .errors import ValidationError

logger = logging.getLogger(__name__)

PERIOD_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")
DATE_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")

MIN_YEAR = 2010
MAX_YEAR = 2100


class Period(NamedTuple):
    year: int
    month: int

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def months_since(self, other: "Period") -> int:
        return (self.year * 12 + self.month) - (other.year * 12 + other.month)


def _check_ranges(year: int, month: int, field_name: str, raw: str) -> None:
    if not (MIN_YEAR <= year <= MAX_YEAR):
        raise ValidationError(
            "year_out_of_range",
            f'O campo "{field_name}" deve ter um ano entre {MIN_YEAR} e {MAX_YEAR}. Valor recebido: "{raw}"',
        )
    if not (1 <= month <= 12):
        raise ValidationError(
            "month_out_of_range",
            f'O campo "{field_name}" deve ter um mês entre 01 e 12. Valor recebido: "{raw}"',
        )


def parse_period(raw, field_name: str) -> Period:
    value = str(raw).strip() if raw is not None else ""
    m = PERIOD_PATTERN.match(value)
    if not m:
        raise ValidationError(
            "bad_period_format",
            f'O campo "{field_name}" deve estar no formato AAAA-MM (ex: "2024-01"). Valor recebido: "{value}"',
        )
    year, month = int(m.group(1)), int(m.group(2))
    _check_ranges(year, month, field_name, value)
    return Period(year, month)


def normalize_period(
    raw,
    field_name: str,
    allow_future_months: int = 1,
    today: Optional[date] = None,
) -> str:
    """
    Valida um período AAAA-MM e devolve sempre com zero à esquerda.

    Períodos mais de `allow_future_months` meses à frente do mês corrente
    geram apenas um aviso no log: a requisição segue.
    """
    period = parse_period(raw, field_name)

    today = today or date.today()
    ahead = period.months_since(Period(today.year, today.month))
    if ahead > allow_future_months:
        logger.warning(
            "%s=%s está %d meses à frente do mês atual (tolerância: %d)",
            field_name, period, ahead, allow_future_months,
        )

    return str(period)


def normalize_date(raw, field_name: str) -> str:
    """Valida uma data AAAA-MM-DD (ano, mês e dia reais) e devolve zero-padded."""
    value = str(raw).strip() if raw is not None else ""
    m = DATE_PATTERN.match(value)
    if not m:
        raise ValidationError(
            "bad_period_format",
            f'O campo "{field_name}" deve estar no formato AAAA-MM-DD. Valor recebido: "{value}"',
        )
    year, month, day = int(m.group(1)), int(m.group(2)), int(m.group(3))
    _check_ranges(year, month, field_name, value)
    try:
        parsed = date(year, month, day)
    except ValueError:
        raise ValidationError(
            "day_out_of_range",
            f'O campo "{field_name}" tem um dia inválido para o mês. Valor recebido: "{value}"',
        )
    return parsed.isoformat()


def is_valid_period(raw) -> bool:
    """Versão booleana de parse_period, para campos opcionais descartáveis."""
    try:
        parse_period(raw, "period")
    except ValidationError:
        return False
    return True
