# Service domains of the portal and their triage vocabularies
from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Type

from pydantic import BaseModel

from portal.models.forms import (
    AtendimentoJuridico,
    AtendimentoProcuradoria,
    ManifestacaoOuvidoria,
    ReclamacaoProcon,
    SolicitacaoBalcao,
    SolicitacaoVereador,
)

UNCLASSIFIED = "Não Classificado"
ALL_TAB = "Todas"

BASIC_SNAPSHOT = ("name", "email", "cpf", "phone")


@dataclass(frozen=True)
class DomainDescriptor:
    """Everything the generic form, list and dashboard views need for one domain."""
    key: str
    title: str
    label: str
    collection: str
    statuses: Tuple[str, ...]
    form_model: Type[BaseModel]
    snapshot_fields: Tuple[str, ...] = BASIC_SNAPSHOT
    allows_anonymous: bool = False
    requires_profile: bool = False
    issues_protocol: bool = False
    staff_role: Optional[str] = None
    completed_statuses: Tuple[str, ...] = ()
    managed_fields: Tuple[str, ...] = ()

    @property
    def initial_status(self) -> str:
        return self.statuses[0]

    @property
    def chart_categories(self) -> Tuple[str, ...]:
        return self.statuses + (UNCLASSIFIED,)

    @property
    def tabs(self) -> Tuple[str, ...]:
        return (ALL_TAB,) + self.statuses

    @property
    def notification_title(self) -> str:
        return f"Sua solicitação para {self.label} teve movimentação."


PROCON = DomainDescriptor(
    key="procon",
    title="Procon",
    label="o Procon",
    collection="denuncias_procon",
    statuses=("Aberta", "Em Análise", "Pendente", "Em Negociação", "Finalizada"),
    form_model=ReclamacaoProcon,
    issues_protocol=True,
    staff_role="Procon",
    completed_statuses=("Finalizada",),
    managed_fields=("cnpj", "razao_social"),
)

JURIDICO = DomainDescriptor(
    key="juridico",
    title="Atendimento Jurídico",
    label="o Atendimento Jurídico",
    collection="atendimento_juridico",
    statuses=("Aguardando Atendimento", "Em Análise", "Concluído"),
    form_model=AtendimentoJuridico,
    snapshot_fields=BASIC_SNAPSHOT + ("address", "city", "state", "cep"),
    staff_role="Juridico",
    completed_statuses=("Concluído",),
)

BALCAO = DomainDescriptor(
    key="balcao",
    title="Balcão do Cidadão",
    label="o Balcão do Cidadão",
    collection="balcao_cidadao",
    statuses=("Aguardando Atendimento", "Em Análise", "Concluído"),
    form_model=SolicitacaoBalcao,
    requires_profile=True,
    staff_role="Balcão",
    completed_statuses=("Concluído",),
)

OUVIDORIA = DomainDescriptor(
    key="ouvidoria",
    title="Ouvidoria",
    label="a Ouvidoria",
    collection="ouvidoria",
    statuses=("Recebida", "Em Análise", "Respondida", "Encaminhada"),
    form_model=ManifestacaoOuvidoria,
    allows_anonymous=True,
    staff_role="Ouvidoria",
    completed_statuses=("Respondida", "Encaminhada"),
)

PROCURADORIA = DomainDescriptor(
    key="procuradoria",
    title="Procuradoria da Mulher",
    label="a Procuradoria da Mulher",
    collection="procuradoria_mulher",
    statuses=("Recebida", "Em Acolhimento", "Encaminhada", "Concluída"),
    form_model=AtendimentoProcuradoria,
    allows_anonymous=True,
    staff_role="Procuradoria",
    completed_statuses=("Concluída",),
)

VEREADORES = DomainDescriptor(
    key="vereadores",
    title="Vereadores",
    label="os Vereadores",
    collection="solicitacoes_vereadores",
    statuses=("Aguardando Confirmação", "Agendado", "Realizado", "Cancelado"),
    form_model=SolicitacaoVereador,
    snapshot_fields=("name", "email", "phone", "address", "neighborhood", "city"),
    staff_role="Vereador",
    completed_statuses=("Realizado",),
    managed_fields=("vereador_id", "vereador_nome"),
)

DOMAINS: Dict[str, DomainDescriptor] = {
    domain.key: domain for domain in (PROCON, JURIDICO, BALCAO, OUVIDORIA, PROCURADORIA, VEREADORES)
}


def get_domain(key: str) -> DomainDescriptor:
    try:
        return DOMAINS[key]
    except KeyError:
        raise ValueError(f"Domínio desconhecido: '{key}'") from None
