import json

import httpx
import pytest

from esocial.adapters.certificate import Certificate
from esocial.adapters.transmission import HttpTransmissionClient
from esocial.core.errors import ConfigurationError, TransmissionError
from esocial.core.tax_id import IdKind
from esocial.schema.models import Document, EmployerContext, EventGroup, TransmitterContext

CERT = Certificate(pfx_base64="cGZ4", password="segredo", subject_cn="X:12345678000190", tax_id="12345678000190")
EMPLOYER = EmployerContext(tax_id="12345678000190")
TRANSMITTER = TransmitterContext(kind=IdKind.CNPJ, tax_id="12345678000190")
DOC = Document(tipo="S-1000", grupo=EventGroup.INITIAL, dados={"x": 1}, config={"tpAmb": 2})


def _client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.mark.contract
def test_submit_batch_posts_documents_and_credentials():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"protocolo": "1.2.3"})

    client = HttpTransmissionClient("http://transmissor:8080/", client=_client(handler))
    result = client.submit_batch(EventGroup.INITIAL, [DOC], CERT, EMPLOYER, TRANSMITTER)

    assert result == {"protocolo": "1.2.3"}
    assert seen["url"] == "http://transmissor:8080/lotes"
    assert seen["body"]["grupo"] == 1
    assert seen["body"]["tpAmb"] == 2
    assert seen["body"]["transmissor"] == {"tpInsc": 1, "nrInsc": "12345678000190"}
    assert seen["body"]["eventos"][0]["tipo"] == "S-1000"
    assert seen["body"]["certificate"] == {"pfx": "cGZ4", "password": "segredo"}


@pytest.mark.contract
def test_query_batch_posts_protocol():
    def handler(request):
        body = json.loads(request.content)
        return httpx.Response(200, json={"protocolo": body["protocolo"], "situacao": 2})

    client = HttpTransmissionClient("http://transmissor", client=_client(handler))

    assert client.query_batch("1.2.3", CERT) == {"protocolo": "1.2.3", "situacao": 2}


@pytest.mark.contract
def test_rejection_becomes_transmission_error():
    def handler(request):
        return httpx.Response(422, json={"error": "Erro na assinatura do XML"})

    client = HttpTransmissionClient("http://transmissor", client=_client(handler))

    with pytest.raises(TransmissionError) as exc:
        client.submit_batch(EventGroup.INITIAL, [DOC], CERT, EMPLOYER, TRANSMITTER)

    assert exc.value.message == "Erro na assinatura do XML"
    assert exc.value.status_code == 500


@pytest.mark.contract
def test_network_failure_becomes_transmission_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = HttpTransmissionClient("http://transmissor", client=_client(handler))

    with pytest.raises(TransmissionError) as exc:
        client.query_batch("1.2.3", CERT)

    assert exc.value.code == "transmission_failed"


@pytest.mark.contract
def test_missing_url_is_configuration_error():
    with pytest.raises(ConfigurationError) as exc:
        HttpTransmissionClient(None).query_batch("1.2.3", CERT)

    assert exc.value.code == "transmission_not_configured"
    assert exc.value.status_code == 500
