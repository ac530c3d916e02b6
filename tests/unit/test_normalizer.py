import copy

import pytest

from esocial.core.errors import ValidationError
from esocial.core.normalizer import PROCEDURES, get_procedure, normalize_batch, normalize_event
from esocial.schema.models import Event


def _normalize(tipo, dados, ctx):
    return normalize_event(Event(tipo=tipo, dados=dados), ctx).dados


def _code(tipo, dados, ctx):
    with pytest.raises(ValidationError) as exc:
        normalize_event(Event(tipo=tipo, dados=dados), ctx)
    return exc.value.code


# S-1000

@pytest.mark.validation
def test_s1000_normalizes_employer_and_indicators(s1000_dados, ctx):
    dados = _normalize("S-1000", s1000_dados, ctx)

    assert dados["ideEmpregador"] == {"tpInsc": 1, "nrInsc": "12345678"}
    assert dados["infocadastro"]["inddesfolha"] == 1
    assert dados["infocadastro"]["indoptregeletron"] == 0
    assert "indDesFolha" not in dados["infocadastro"]
    assert dados["ideperiodo"] == {"inivalid": "2024-01"}


@pytest.mark.validation
def test_s1000_public_classification_keeps_full_cnpj(s1000_dados, ctx):
    s1000_dados["infocadastro"]["classtrib"] = "22"

    dados = _normalize("S-1000", s1000_dados, ctx)

    assert dados["ideEmpregador"]["nrInsc"] == "12345678000190"


@pytest.mark.validation
def test_s1000_requires_classification(s1000_dados, ctx):
    del s1000_dados["infocadastro"]["classtrib"]
    assert _code("S-1000", s1000_dados, ctx) == "missing_field:taxClassification"


@pytest.mark.validation
@pytest.mark.parametrize("classtrib", ["1", "123", "AB"])
def test_s1000_classification_must_have_two_digits(s1000_dados, ctx, classtrib):
    s1000_dados["infocadastro"]["classtrib"] = classtrib
    assert _code("S-1000", s1000_dados, ctx) == "invalid_tax_classification"


@pytest.mark.validation
def test_s1000_requires_period_start(s1000_dados, ctx):
    del s1000_dados["ideperiodo"]
    assert _code("S-1000", s1000_dados, ctx) == "missing_field:periodStart"


@pytest.mark.validation
def test_s1000_migrates_legacy_period_start(s1000_dados, ctx):
    del s1000_dados["ideperiodo"]
    s1000_dados["infocadastro"]["inivalid"] = "2023-07"

    dados = _normalize("S-1000", s1000_dados, ctx)

    assert dados["ideperiodo"]["inivalid"] == "2023-07"
    assert "inivalid" not in dados["infocadastro"]


@pytest.mark.validation
def test_s1000_drops_malformed_period_end(s1000_dados, ctx):
    s1000_dados["ideperiodo"]["fimvalid"] = "12/2024"
    assert "fimvalid" not in _normalize("S-1000", s1000_dados, ctx)["ideperiodo"]

    s1000_dados["ideperiodo"]["fimvalid"] = "2024-12"
    assert _normalize("S-1000", s1000_dados, ctx)["ideperiodo"]["fimvalid"] == "2024-12"


@pytest.mark.validation
def test_s1000_bad_period_start(s1000_dados, ctx):
    s1000_dados["ideperiodo"]["inivalid"] = "2024-1"
    assert _code("S-1000", s1000_dados, ctx) == "bad_period_format"


# S-1200

@pytest.mark.validation
def test_s1200_full_normalization(s1200_dados, ctx):
    dados = _normalize("S-1200", s1200_dados, ctx)

    assert dados["cpftrab"] == "12345678901"
    assert dados["indretif"] == 1
    assert dados["indapuracao"] == 1
    assert dados["ideEmpregador"]["nrInsc"] == "12345678"

    estab = dados["dmdev"][0]["infoperapur"]["ideestablot"][0]
    assert estab["nrinsc"] == "12345678000000"
    item = estab["remunperapur"][0]["itensremun"][0]
    assert item == {"codrubr": "1000", "idetabrubr": "TAB01", "vrrubr": 1234.56}


@pytest.mark.validation
def test_s1200_retification_requires_receipt(s1200_dados, ctx):
    s1200_dados["indretif"] = 2
    assert _code("S-1200", s1200_dados, ctx) == "missing_field:receiptNumber"

    s1200_dados["nrrecibo"] = "1.1.0000000000000000001"
    assert _normalize("S-1200", s1200_dados, ctx)["nrrecibo"] == "1.1.0000000000000000001"


@pytest.mark.validation
def test_s1200_original_strips_receipt(s1200_dados, ctx):
    s1200_dados["indretif"] = "1"
    s1200_dados["nrrecibo"] = "1.1.0000000000000000001"

    assert "nrrecibo" not in _normalize("S-1200", s1200_dados, ctx)


@pytest.mark.validation
@pytest.mark.parametrize(
    "mutate,code",
    [
        (lambda d: d.pop("perapur"), "missing_field:accrualPeriod"),
        (lambda d: d.pop("cpftrab"), "missing_field:workerTaxId"),
        (lambda d: d.update(cpftrab="123"), "invalid_cpf_length"),
        (lambda d: d.update(dmdev=[]), "missing_field:demonstratives"),
        (lambda d: d["dmdev"][0].pop("idedmdev"), "missing_field:demonstrativeId"),
        (lambda d: d["dmdev"][0]["infoperapur"]["ideestablot"][0].pop("tpinsc"), "missing_field:establishmentTaxIdKind"),
        (lambda d: d["dmdev"][0]["infoperapur"]["ideestablot"][0].update(nrinsc=""), "missing_field:establishmentTaxId"),
        (lambda d: d["dmdev"][0]["infoperapur"]["ideestablot"][0].pop("codlotacao"), "missing_field:lotationCode"),
        (lambda d: d["dmdev"][0]["infoperapur"]["ideestablot"][0]["remunperapur"][0]["itensremun"][0].pop("codrubr"), "missing_field:code"),
        (lambda d: d["dmdev"][0]["infoperapur"]["ideestablot"][0]["remunperapur"][0]["itensremun"][0].pop("idetabrubr"), "missing_field:tableRef"),
        (lambda d: d["dmdev"][0]["infoperapur"]["ideestablot"][0]["remunperapur"][0]["itensremun"][0].pop("vrrubr"), "missing_field:value"),
        (lambda d: d["dmdev"][0]["infoperapur"]["ideestablot"][0]["remunperapur"][0]["itensremun"][0].update(vrrubr="abc"), "invalid_amount:vrrubr"),
    ],
)
def test_s1200_required_fields(s1200_dados, ctx, mutate, code):
    mutate(s1200_dados)
    assert _code("S-1200", s1200_dados, ctx) == code


@pytest.mark.validation
def test_s1200_single_demonstrative_object_becomes_list(s1200_dados, ctx):
    s1200_dados["dmdev"] = s1200_dados["dmdev"][0]

    dados = _normalize("S-1200", s1200_dados, ctx)

    assert isinstance(dados["dmdev"], list)
    assert dados["dmdev"][0]["idedmdev"] == "DM-001"


# Tabelas e não periódicos

@pytest.mark.validation
def test_s1005_exclusion_drops_data_block(ctx):
    dados = _normalize("S-1005", {
        "modo": "EXC",
        "ideestab": {"tpinsc": 1, "nrinsc": "12345678000190", "inivalid": "2024-01"},
        "dadosestab": {"cnaeprep": "6201501"},
        "novavalidade": {"inivalid": "2024-02"},
    }, ctx)

    assert "dadosestab" not in dados
    assert "novavalidade" not in dados


@pytest.mark.validation
def test_alteration_keeps_non_empty_validity_fields(ctx):
    dados = _normalize("S-1010", {
        "modo": "ALT",
        "iderubrica": {"codrubr": "1000", "inivalid": "2024-01"},
        "dadosrubrica": {"natrubr": 1000, "observacao": "", "tetoremun": None, "codinccprp": "00"},
        "novavalidade": {"inivalid": "2024-02", "fimvalid": ""},
    }, ctx)

    assert dados["novavalidade"] == {"inivalid": "2024-02"}
    assert dados["dadosrubrica"] == {"natrubr": 1000, "codinccprp": "00"}


@pytest.mark.validation
def test_s1020_empty_sub_blocks_vanish(ctx):
    dados = _normalize("S-1020", {
        "modo": "INC",
        "idelotacao": {"codlotacao": "LOT01", "inivalid": "2024-01"},
        "dadoslotacao": {
            "tplotacao": "01",
            "tpinsc": "",
            "nrinsc": None,
            "fpasLotacao": {"fpas": 515, "codtercs": "0115"},
            "infoemprparcial": {"tpinsccontrat": "", "nrinsccontrat": None},
            "dadosopport": {"aliqrat": None},
        },
    }, ctx)

    assert dados["dadoslotacao"] == {"tplotacao": "01", "fpasLotacao": {"fpas": 515, "codtercs": "0115"}}


@pytest.mark.validation
def test_s2200_drops_empty_optionals_and_formats_worker(ctx):
    dados = _normalize("S-2200", {
        "ideEmpregador": {"tpInsc": 1, "nrInsc": "12345678000190"},
        "cpftrab": "123.456.789-01",
        "nmtrab": "FULANO",
        "estciv": "",
        "dependente": [],
        "endereco": {"brasil": {"tplograd": "", "dsclograd": "RUA A", "bairro": None}},
        "vinculo": {"matricula": "A1", "codcargo": "", "codfuncao": None},
    }, ctx)

    assert dados["cpftrab"] == "12345678901"
    assert dados["ideEmpregador"]["nrInsc"] == "12345678"
    assert "estciv" not in dados and "dependente" not in dados
    assert dados["endereco"] == {"brasil": {"dsclograd": "RUA A"}}
    assert dados["vinculo"] == {"matricula": "A1"}


@pytest.mark.validation
def test_public_employer_configuration_applies_to_other_events(ctx):
    public_ctx = type(ctx)(today=ctx.today, tax_classification="25")

    dados = _normalize("S-2300", {"ideEmpregador": {"tpInsc": 1, "nrInsc": "12345678000190"}, "cpftrab": "12345678901"}, public_ctx)

    assert dados["ideEmpregador"]["nrInsc"] == "12345678000190"


@pytest.mark.validation
def test_s2299_date_normalization(ctx):
    assert _normalize("S-2299", {"cpftrab": "12345678901", "dtdeslig": "2024-02-29"}, ctx)["dtdeslig"] == "2024-02-29"
    assert _code("S-2299", {"cpftrab": "12345678901", "dtdeslig": "2024-02-30"}, ctx) == "day_out_of_range"


# Despacho

@pytest.mark.validation
def test_unsupported_and_missing_type():
    with pytest.raises(ValidationError) as exc:
        get_procedure("S-9999")
    assert exc.value.code == "unsupported_event_type"

    with pytest.raises(ValidationError) as exc:
        get_procedure("")
    assert exc.value.code == "missing_field:tipo"


def test_every_supported_type_has_a_procedure():
    assert set(PROCEDURES) == {"S-1000", "S-1005", "S-1010", "S-1020", "S-1200", "S-2200", "S-2299", "S-2300"}


def test_input_event_is_not_mutated(s1200_dados, ctx):
    original = copy.deepcopy(s1200_dados)
    normalize_event(Event(tipo="S-1200", dados=s1200_dados), ctx)

    assert s1200_dados == original


@pytest.mark.validation
@pytest.mark.parametrize("workers", [None, 4])
def test_batch_reports_first_failure_in_input_order(s1000_dados, s1200_dados, ctx, workers):
    bad_first = dict(s1200_dados, perapur="2024-13")
    bad_second = dict(s1200_dados, cpftrab="1")
    events = [
        Event(tipo="S-1000", dados=s1000_dados),
        Event(tipo="S-1200", dados=bad_first),
        Event(tipo="S-1200", dados=bad_second),
    ]

    with pytest.raises(ValidationError) as exc:
        normalize_batch(events, ctx, max_workers=workers)

    assert exc.value.code == "month_out_of_range"


def test_batch_keeps_input_order(s1000_dados, s1200_dados, ctx):
    events = [Event(tipo="S-1200", dados=s1200_dados), Event(tipo="S-1000", dados=s1000_dados)] * 3

    result = normalize_batch(events, ctx, max_workers=3)

    assert [e.tipo for e in result] == ["S-1200", "S-1000"] * 3
