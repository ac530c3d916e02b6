import json
from datetime import date

import pytest

from esocial.adapters.certificate import Certificate
from esocial.adapters.config_store import ConfigStore
from esocial.core.normalizer import NormalizationContext
from esocial.orchestrator import EventGateway


def pytest_configure(config):
    """Registra markers customizados para evitar warnings."""
    config.addinivalue_line("markers", "api: Testes da camada HTTP")
    config.addinivalue_line("markers", "validation: Testes de normalização e validação de dados")
    config.addinivalue_line("markers", "contract: Testes dos colaboradores (config, certificado, transmissão)")
    config.addinivalue_line("markers", "e2e: Fluxo completo do gateway com colaboradores stub")


class StubTransmission:
    """Registra cada chamada; nunca fala com a rede."""

    def __init__(self, response=None):
        self.response = response or {"protocolo": "1.2.202401.0000000000000000001", "status": 201}
        self.calls = []
        self.queries = []

    def submit_batch(self, group, documents, certificate, employer, transmitter):
        self.calls.append({
            "group": group,
            "documents": documents,
            "certificate": certificate,
            "employer": employer,
            "transmitter": transmitter,
        })
        return self.response

    def query_batch(self, protocol_number, certificate):
        self.queries.append(protocol_number)
        return {"protocolo": protocol_number, "situacao": "processado"}


class StubCertificateLoader:
    def __init__(self, tax_id="12345678000190"):
        self.tax_id = tax_id
        self.calls = 0

    def __call__(self, pfx_base64, password):
        self.calls += 1
        return Certificate(
            pfx_base64=pfx_base64,
            password=password,
            subject_cn=f"EMPRESA TESTE LTDA:{self.tax_id}" if self.tax_id else "EMPRESA TESTE LTDA",
            tax_id=self.tax_id,
        )


@pytest.fixture
def config_data():
    return {
        "tpAmb": 2,
        "verProc": "SISTEMA-RH-1.0",
        "eventoVersion": "S.1.3.0",
        "serviceVersion": "1.5.0",
        "empregador": {
            "tpInsc": 1,
            "nrInsc": "12.345.678/0001-90",
            "nmRazao": "EMPRESA TESTE LTDA",
            "classTrib": "99",
        },
        "certificate": {"pfx": "ZmFrZS1wZng=", "password": "segredo"},
    }


@pytest.fixture
def config_file(tmp_path, config_data):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(config_data), encoding="utf-8")
    return path


@pytest.fixture
def store(config_file):
    return ConfigStore(config_file)


@pytest.fixture
def transmission():
    return StubTransmission()


@pytest.fixture
def certificate_loader():
    return StubCertificateLoader()


@pytest.fixture
def gateway(store, transmission, certificate_loader):
    return EventGateway(store=store, transmission=transmission, certificate_loader=certificate_loader)


@pytest.fixture
def ctx():
    return NormalizationContext(today=date(2024, 3, 15), future_months=1, tax_classification="99")


@pytest.fixture
def s1000_dados():
    return {
        "ideEmpregador": {"tpInsc": 1, "nrInsc": "12.345.678/0001-90"},
        "ideperiodo": {"inivalid": "2024-01"},
        "infocadastro": {"classtrib": "99", "indDesFolha": "1", "indoptregeletron": ""},
    }


@pytest.fixture
def s1200_dados():
    return {
        "ideEmpregador": {"tpInsc": 1, "nrInsc": "12345678000190"},
        "indretif": 1,
        "perapur": "2024-02",
        "cpftrab": "123.456.789-01",
        "dmdev": [
            {
                "idedmdev": "DM-001",
                "codcateg": 101,
                "infoperapur": {
                    "ideestablot": [
                        {
                            "tpinsc": 1,
                            "nrinsc": "12345678",
                            "codlotacao": "LOT01",
                            "remunperapur": [
                                {
                                    "matricula": "A1",
                                    "itensremun": [
                                        {"codrubr": "1000", "idetabrubr": "TAB01", "vrrubr": "1.234,56", "qtdrubr": ""},
                                    ],
                                }
                            ],
                        }
                    ]
                },
            }
        ],
    }
