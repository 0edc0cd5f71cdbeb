# Public open-data lookups: council roster and company registry (CNPJ)
import logging
from typing import Any, Dict, List, Optional

import requests
from pydantic import BaseModel

from portal.config import DEFAULT_OPEN_DATA_URL
from portal.errors import CnpjLookupError, RosterUnavailableError
from portal.models.forms import only_digits

logger = logging.getLogger(__name__)

ROSTER_PATH = "/dadosabertosexportar"
ROSTER_PARAMS = {"d": "vereadores", "a": "", "f": "json"}
CNPJ_URL = "https://brasilapi.com.br/api/cnpj/v1/{cnpj}"
DEFAULT_TIMEOUT = 10


class Vereador(BaseModel):
    id: str
    nome: str
    partido: Optional[str] = None
    foto: Optional[str] = None


class CompanyInfo(BaseModel):
    cnpj: str
    razao_social: str
    nome_fantasia: Optional[str] = None
    situacao: Optional[str] = None
    municipio: Optional[str] = None
    uf: Optional[str] = None


def _first(entry: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = entry.get(key)
        if value not in (None, ""):
            return str(value)
    return None


def parse_roster(payload: Any) -> List[Vereador]:
    """Accepts a bare list or ``{"dados": [...]}``; entries without a name are skipped."""
    entries = payload.get("dados") if isinstance(payload, dict) else payload
    if not isinstance(entries, list):
        raise RosterUnavailableError("Formato inesperado na lista de vereadores.")
    roster = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            continue
        nome = _first(entry, "Nome", "nome", "vereador_nome")
        if not nome:
            continue
        roster.append(Vereador(
            id=_first(entry, "Id", "id", "vereador_id") or str(index),
            nome=nome,
            partido=_first(entry, "Partido", "partido", "vereador_partido", "vereador_titulo"),
            foto=_first(entry, "Foto", "foto", "vereador_foto"),
        ))
    return roster


class CouncilRosterClient:
    """Reads the council members from the chamber's open-data export."""

    def __init__(self, base_url: str = DEFAULT_OPEN_DATA_URL, http: Optional[requests.Session] = None,
                 timeout: float = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.http = http or requests.Session()
        self.timeout = timeout

    def fetch(self) -> List[Vereador]:
        try:
            response = self.http.get(f"{self.base_url}{ROSTER_PATH}", params=ROSTER_PARAMS, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Erro ao buscar vereadores: {e}", exc_info=True)
            raise RosterUnavailableError("Não foi possível carregar os dados dos vereadores.") from e
        return parse_roster(payload)


def lookup_cnpj(cnpj: str, http: Optional[requests.Session] = None,
                timeout: float = DEFAULT_TIMEOUT) -> CompanyInfo:
    digits = only_digits(cnpj)
    if len(digits) != 14:
        raise ValueError("CNPJ inválido")
    http = http or requests.Session()
    try:
        response = http.get(CNPJ_URL.format(cnpj=digits), timeout=timeout)
    except requests.RequestException as e:
        logger.error(f"Erro ao buscar CNPJ {digits}: {e}", exc_info=True)
        raise CnpjLookupError("Erro ao conectar com a API") from e
    if not response.ok:
        try:
            message = response.json().get("message")
        except ValueError:
            message = None
        raise CnpjLookupError(message or "CNPJ não encontrado ou API indisponível.")
    data = response.json()
    return CompanyInfo(
        cnpj=digits,
        razao_social=data.get("razao_social") or "",
        nome_fantasia=data.get("nome_fantasia") or None,
        situacao=data.get("descricao_situacao_cadastral") or None,
        municipio=data.get("municipio") or None,
        uf=data.get("uf") or None,
    )
