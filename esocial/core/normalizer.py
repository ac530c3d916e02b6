"""
Normalização e validação de eventos eSocial.

Uma procedure por tipo de evento, registradas em PROCEDURES. Cada procedure
recebe sua própria cópia de `dados` e um NormalizationContext; não há estado
compartilhado entre tipos nem entre requisições.

Etapas aplicadas a todo evento:
    procedure específica -> inscrição do empregador -> CPF do trabalhador
    -> regra de novavalidade -> campos opcionais vazios -> prune
"""
import copy
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .amounts import coerce_amounts, coerce_indicator
from .errors import ValidationError, missing_field
from .periods import is_valid_period, normalize_date, normalize_period, parse_period
from .pruner import drop_empty_optionals, prune
from .tax_id import (
    as_kind,
    normalize_cpf,
    normalize_employer_tax_id,
    normalize_establishment_tax_id,
)
from ..schema.models import EmployerContext, Event, EventType

logger = logging.getLogger(__name__)

Payload = Dict[str, Any]


@dataclass(frozen=True)
class NormalizationContext:
    """Tudo o que uma procedure pode consultar além do próprio payload."""
    today: date = field(default_factory=date.today)
    future_months: int = 1
    tax_classification: Optional[str] = None

    @classmethod
    def for_employer(cls, employer: EmployerContext, future_months: int = 1) -> "NormalizationContext":
        return cls(future_months=future_months, tax_classification=employer.tax_classification)


@dataclass(frozen=True)
class EventProcedure:
    tipo: str
    normalize: Callable[[Payload, NormalizationContext], Payload]
    optional_fields: Tuple[str, ...] = ()
    alt_only_validity: bool = False  ##     novavalidade só existe em modo ALT


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _ensure_mapping(node: Payload, key: str) -> Payload:
    if not isinstance(node.get(key), dict):
        node[key] = {}
    return node[key]


def _as_mappings(value: Any, path: str) -> List[Payload]:
    """Lista de objetos; um objeto isolado vira lista de um item."""
    if value is None:
        return []
    items = [value] if isinstance(value, dict) else value
    if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
        raise ValidationError("invalid_structure", f'"{path}" deve ser uma lista de objetos')
    return items


def _pop_variants(node: Payload, *keys: str) -> Any:
    """Remove todas as grafias do campo e devolve a primeira não nula."""
    found = None
    for key in keys:
        value = node.pop(key, None)
        if found is None and value is not None:
            found = value
    return found


def _require(node: Payload, key: str, name: str, path: str) -> Any:
    value = node.get(key)
    if _blank(value):
        raise missing_field(name, path)
    return value


# =====================================================
# S-1000 Informações do empregador
# =====================================================

def _normalize_s1000(dados: Payload, ctx: NormalizationContext) -> Payload:
    cadastro = _ensure_mapping(dados, "infocadastro")
    periodo = _ensure_mapping(dados, "ideperiodo")

    classtrib = str(_require(cadastro, "classtrib", "taxClassification", "infocadastro.classtrib")).strip()
    if not re.fullmatch(r"\d{2}", classtrib):
        raise ValidationError(
            "invalid_tax_classification",
            f'O campo "classtrib" deve conter exatamente 2 dígitos numéricos. Valor recebido: "{classtrib}"',
        )
    cadastro["classtrib"] = classtrib

    # Layout antigo trazia inivalid dentro de infocadastro
    legacy_inivalid = cadastro.pop("inivalid", None)
    if _blank(periodo.get("inivalid")) and not _blank(legacy_inivalid):
        logger.info("S-1000: inivalid migrado de infocadastro para ideperiodo")
        periodo["inivalid"] = legacy_inivalid

    inivalid = _require(periodo, "inivalid", "periodStart", "ideperiodo.inivalid")
    periodo["inivalid"] = normalize_period(inivalid, "inivalid", ctx.future_months, ctx.today)

    fimvalid = periodo.get("fimvalid")
    if not _blank(fimvalid):
        if is_valid_period(fimvalid):
            periodo["fimvalid"] = str(parse_period(fimvalid, "fimvalid"))
        else:
            logger.warning("S-1000: fimvalid inválido descartado (%r)", fimvalid)
            del periodo["fimvalid"]

    cadastro["inddesfolha"] = coerce_indicator(
        _pop_variants(cadastro, "inddesfolha", "indDesFolha"), (0, 1, 2), default=0
    )
    cadastro["indoptregeletron"] = coerce_indicator(
        _pop_variants(cadastro, "indoptregeletron", "indOptRegEletron"), (0, 1), default=0
    )
    return dados


# =====================================================
# S-1200 Remuneração
# dmdev -> infoperapur.ideestablot -> remunperapur -> itensremun
# =====================================================

ESTABLISHMENT_REQUIRED = (
    ("tpinsc", "establishmentTaxIdKind"),
    ("nrinsc", "establishmentTaxId"),
    ("codlotacao", "lotationCode"),
)

ITEM_REQUIRED = (
    ("codrubr", "code"),
    ("idetabrubr", "tableRef"),
    ("vrrubr", "value"),
)


def _normalize_establishment(establishment: Payload, path: str) -> None:
    for key, name in ESTABLISHMENT_REQUIRED:
        _require(establishment, key, name, f"{path}.{key}")

    kind = as_kind(establishment["tpinsc"])
    establishment["tpinsc"] = int(kind)
    establishment["nrinsc"] = normalize_establishment_tax_id(establishment["nrinsc"], kind).digits

    for k, remun in enumerate(_as_mappings(establishment.get("remunperapur"), f"{path}.remunperapur")):
        remun_path = f"{path}.remunperapur[{k}]"
        for n, item in enumerate(_as_mappings(remun.get("itensremun"), f"{remun_path}.itensremun")):
            item_path = f"{remun_path}.itensremun[{n}]"
            for key, name in ITEM_REQUIRED:
                _require(item, key, name, f"{item_path}.{key}")
            coerce_amounts(item, ("vrrubr", "qtdrubr", "fatorrubr"))


def _normalize_s1200(dados: Payload, ctx: NormalizationContext) -> Payload:
    perapur = _require(dados, "perapur", "accrualPeriod", "perapur")
    dados["perapur"] = normalize_period(perapur, "perapur", ctx.future_months, ctx.today)

    dados["indretif"] = coerce_indicator(dados.get("indretif"), (1, 2), default=1)
    if dados["indretif"] == 2:
        _require(dados, "nrrecibo", "receiptNumber", "nrrecibo")
    else:
        dados.pop("nrrecibo", None)

    dados["indapuracao"] = coerce_indicator(dados.get("indapuracao"), (1, 2), default=1)

    cpftrab = _require(dados, "cpftrab", "workerTaxId", "cpftrab")
    dados["cpftrab"] = normalize_cpf(cpftrab).digits

    demonstratives = _as_mappings(dados.get("dmdev"), "dmdev")
    if not demonstratives:
        raise missing_field("demonstratives", "dmdev")
    dados["dmdev"] = demonstratives

    for i, dmdev in enumerate(demonstratives):
        _require(dmdev, "idedmdev", "demonstrativeId", f"dmdev[{i}].idedmdev")

        infoperapur = dmdev.get("infoperapur") if isinstance(dmdev.get("infoperapur"), dict) else {}
        establishments_path = f"dmdev[{i}].infoperapur.ideestablot"
        for j, establishment in enumerate(_as_mappings(infoperapur.get("ideestablot"), establishments_path)):
            _normalize_establishment(establishment, f"{establishments_path}[{j}]")

    return dados


# =====================================================
# Tabelas (S-1005, S-1010, S-1020) e não periódicos
# =====================================================

def _drop_on_exclusion(block: str) -> Callable[[Payload, NormalizationContext], Payload]:
    """Em modo EXC o bloco de dados da tabela não é enviado."""
    def normalize(dados: Payload, ctx: NormalizationContext) -> Payload:
        if dados.get("modo") == "EXC":
            dados.pop(block, None)
        return dados
    return normalize


def _passthrough(dados: Payload, ctx: NormalizationContext) -> Payload:
    return dados


def _normalize_s2299(dados: Payload, ctx: NormalizationContext) -> Payload:
    if not _blank(dados.get("dtdeslig")):
        dados["dtdeslig"] = normalize_date(dados["dtdeslig"], "dtdeslig")
    return dados


ADDRESS_OPTIONALS = (
    "endereco.brasil.tplograd",
    "endereco.brasil.complemento",
    "endereco.brasil.bairro",
    "endereco.exterior.complemento",
    "endereco.exterior.bairro",
    "endereco.exterior.codpostal",
)

PROCEDURES: Dict[str, EventProcedure] = {
    EventType.S1000: EventProcedure(EventType.S1000, _normalize_s1000),
    EventType.S1200: EventProcedure(
        EventType.S1200,
        _normalize_s1200,
        optional_fields=("nrrecibo", "infomv", "infocomplem", "procjudtrab", "infoperant"),
    ),
    EventType.S1005: EventProcedure(
        EventType.S1005,
        _drop_on_exclusion("dadosestab"),
        optional_fields=("sequencial", "fimvalid"),
        alt_only_validity=True,
    ),
    EventType.S1010: EventProcedure(
        EventType.S1010,
        _passthrough,
        optional_fields=(
            "sequencial",
            "fimvalid",
            "dadosrubrica.codinccprp",
            "dadosrubrica.codincpispasep",
            "dadosrubrica.tetoremun",
            "dadosrubrica.observacao",
            "dadosrubrica.ideprocessocp",
            "dadosrubrica.ideprocessoirrf",
            "dadosrubrica.ideprocessofgts",
            "dadosrubrica.ideprocessopispasep",
        ),
        alt_only_validity=True,
    ),
    EventType.S1020: EventProcedure(
        EventType.S1020,
        _drop_on_exclusion("dadoslotacao"),
        optional_fields=(
            "sequencial",
            "fimvalid",
            "dadoslotacao.tpinsc",
            "dadoslotacao.nrinsc",
            "dadoslotacao.codtercssusp",
            "dadoslotacao.procjudterceiro",
        ),
        alt_only_validity=True,
    ),
    EventType.S2200: EventProcedure(
        EventType.S2200,
        _passthrough,
        optional_fields=(
            "sequencial", "nrrecibo", "estciv", "nmsoc",
            *ADDRESS_OPTIONALS,
            "dependente", "trabimig", "deficiencia", "contato",
            "vinculo.codcargo", "vinculo.codfuncao",
        ),
        alt_only_validity=True,
    ),
    EventType.S2299: EventProcedure(
        EventType.S2299,
        _normalize_s2299,
        optional_fields=(
            "sequencial", "nrrecibo", "indguia", "dtavprv", "dtprojfimapi",
            "pensalim", "percaliment", "vralim", "nrproctrab",
            "infoInterm", "observacoes", "consigfgts",
            "sucessaovinc", "transftit", "mudancacpf", "verbasresc", "remunaposdeslig",
        ),
        alt_only_validity=True,
    ),
    EventType.S2300: EventProcedure(
        EventType.S2300,
        _passthrough,
        optional_fields=(
            "sequencial", "nrrecibo", "estciv", "nmsoc", "matricula",
            *ADDRESS_OPTIONALS,
            "dependente", "trabimig", "infodeficiencia", "contato",
        ),
        alt_only_validity=True,
    ),
}


# =====================================================
# Etapas comuns
# =====================================================

def _format_employer(tipo: str, dados: Payload, ctx: NormalizationContext) -> None:
    ide = dados.get("ideEmpregador")
    if not isinstance(ide, dict) or _blank(ide.get("nrInsc")):
        return

    kind = as_kind(ide.get("tpInsc"))
    if tipo == EventType.S1000:
        classification = dados.get("infocadastro", {}).get("classtrib")
    else:
        classification = ctx.tax_classification

    original = ide["nrInsc"]
    ide["tpInsc"] = int(kind)
    ide["nrInsc"] = normalize_employer_tax_id(original, kind, classification).digits
    logger.debug("%s: nrInsc do empregador %s -> %s", tipo, original, ide["nrInsc"])


def _format_worker(dados: Payload) -> None:
    if not _blank(dados.get("cpftrab")):
        dados["cpftrab"] = normalize_cpf(dados["cpftrab"]).digits


def _apply_validity_change(dados: Payload) -> None:
    if "novavalidade" in dados and dados.get("modo") != "ALT":
        del dados["novavalidade"]


def get_procedure(tipo: Optional[str]) -> EventProcedure:
    if _blank(tipo):
        raise missing_field("tipo")
    procedure = PROCEDURES.get(tipo.strip())
    if procedure is None:
        raise ValidationError("unsupported_event_type", f"Tipo de evento não suportado: {tipo}")
    return procedure


def normalize_event(event: Event, ctx: Optional[NormalizationContext] = None) -> Event:
    """
    Aplica a procedure do tipo do evento e devolve um novo Event normalizado.
    O evento de entrada não é alterado. A primeira falha aborta o evento.
    """
    ctx = ctx or NormalizationContext()
    procedure = get_procedure(event.tipo)
    dados = copy.deepcopy(event.dados)

    dados = procedure.normalize(dados, ctx)
    _format_employer(procedure.tipo, dados, ctx)
    _format_worker(dados)
    if procedure.alt_only_validity:
        _apply_validity_change(dados)
    drop_empty_optionals(dados, procedure.optional_fields)
    dados = prune(dados)

    logger.info("%s normalizado (%d campos no nível raiz)", procedure.tipo, len(dados))
    return Event(tipo=procedure.tipo, dados=dados)


def normalize_batch(
    events: Sequence[Event],
    ctx: Optional[NormalizationContext] = None,
    max_workers: Optional[int] = None,
) -> List[Event]:
    """
    Normaliza todos os eventos ou nenhum. Com `max_workers` > 1 as procedures
    rodam em paralelo; o erro reportado é sempre o do primeiro evento inválido
    na ordem de entrada.
    """
    ctx = ctx or NormalizationContext()
    if max_workers and max_workers > 1 and len(events) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            return list(pool.map(lambda event: normalize_event(event, ctx), events))
    return [normalize_event(event, ctx) for event in events]
