import pytest
import requests

from portal.errors import CnpjLookupError, RosterUnavailableError
from portal.services.open_data import CouncilRosterClient, lookup_cnpj, parse_roster

from conftest import FakeHttp, FakeResponse

ROSTER = [
    {"Id": 11, "Nome": "José Lima", "Partido": "PSD", "Foto": "https://camara/jose.jpg"},
    {"vereador_nome": "Rita Alves", "vereador_titulo": "Presidente", "vereador_foto": "https://camara/rita.jpg"},
    {"Partido": "PT"},
]


def test_parse_roster_accepts_bare_list_and_wrapped_payload():
    bare = parse_roster(ROSTER)
    wrapped = parse_roster({"dados": ROSTER})
    assert bare == wrapped
    assert [(v.id, v.nome, v.partido) for v in bare] == [("11", "José Lima", "PSD"), ("1", "Rita Alves", "Presidente")]
    assert bare[1].foto == "https://camara/rita.jpg"


def test_parse_roster_rejects_unexpected_shapes():
    with pytest.raises(RosterUnavailableError):
        parse_roster({"erro": "indisponível"})


def test_fetch_requests_the_export_endpoint():
    http = FakeHttp(FakeResponse(200, {"dados": ROSTER}))
    client = CouncilRosterClient("https://camara.example/", http=http)
    roster = client.fetch()

    assert len(roster) == 2
    method, url, kwargs = http.calls[0]
    assert url == "https://camara.example/dadosabertosexportar"
    assert kwargs["params"] == {"d": "vereadores", "a": "", "f": "json"}
    assert kwargs["timeout"] == 10


@pytest.mark.parametrize("response", [
    FakeResponse(503, {"message": "fora do ar"}),
    FakeResponse(200, None),
    requests.Timeout("slow"),
])
def test_fetch_failures_raise_roster_unavailable(response):
    client = CouncilRosterClient(http=FakeHttp(response))
    with pytest.raises(RosterUnavailableError):
        client.fetch()


def test_lookup_cnpj_validates_length_before_calling():
    http = FakeHttp()
    with pytest.raises(ValueError, match="CNPJ inválido"):
        lookup_cnpj("12.345.678/0001", http=http)
    assert http.calls == []


def test_lookup_cnpj_returns_company():
    http = FakeHttp(FakeResponse(200, {"cnpj": "12345678000190", "razao_social": "LOJA EXEMPLO LTDA",
                                       "nome_fantasia": "Loja Exemplo", "descricao_situacao_cadastral": "ATIVA",
                                       "municipio": "PACATUBA", "uf": "CE"}))
    company = lookup_cnpj("12.345.678/0001-90", http=http)
    assert company.razao_social == "LOJA EXEMPLO LTDA"
    assert company.situacao == "ATIVA"
    assert http.calls[0][1] == "https://brasilapi.com.br/api/cnpj/v1/12345678000190"


def test_lookup_cnpj_surfaces_provider_message():
    http = FakeHttp(FakeResponse(404, {"message": "CNPJ 12345678000190 não encontrado."}))
    with pytest.raises(CnpjLookupError, match="não encontrado"):
        lookup_cnpj("12345678000190", http=http)
