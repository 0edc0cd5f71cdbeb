# Pydantic schemas for the request forms of each service domain
import re
from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, Field, constr, field_validator

Required = constr(strip_whitespace=True, min_length=1)

TIPOS_RECLAMACAO = ("Problemas com Contrato", "Produto com defeito", "Serviço não fornecido")
AREAS_ATUACAO = ("Água, Energia e Gás", "Alimentos", "Educação", "Saúde", "Serviços Financeiros",
                 "Telecomunicações", "Demais Serviços")
TIPOS_MANIFESTACAO = ("Reclamação", "Sugestão", "Denúncia", "Elogio", "Crítica")
TIPOS_ATENDIMENTO_MULHER = ("Aconselhamento Jurídico", "Apoio Psicológico", "Denúncia de Violência",
                            "Solicitação de Medida Protetiva", "Outros")
TIPOS_VIOLENCIA = ("Física", "Psicológica", "Moral", "Sexual", "Patrimonial")
RELACOES_VITIMA = ("Sou eu", "Meu familiar", "Minha amiga", "Minha mãe", "Outro")

MULTILINE = {"multiline": True}


def only_digits(value: str) -> str:
    return re.sub(r"\D", "", value or "")


class ReclamacaoProcon(BaseModel):
    """Reclamação, denúncia ou consulta ao PROCON."""
    tipo_reclamacao: Literal[TIPOS_RECLAMACAO] = Field(title="Tipo de reclamação")
    classificacao: Literal[AREAS_ATUACAO] = Field(title="Área de atuação")
    assunto_denuncia: Required = Field(title="Assunto da denúncia")
    cnpj: Required = Field(title="CNPJ da empresa reclamada")
    razao_social: Optional[str] = Field(None, title="Razão social")
    fornecedor_resolver: Required = Field(title="Já tentou resolver com o fornecedor?")
    forma_aquisicao: Optional[str] = Field(None, title="Forma de aquisição")
    tipo_contratacao: Optional[str] = Field(None, title="Tipo de contratação")
    data_contratacao: Optional[date] = Field(None, title="Data da contratação")
    nome_servico: Optional[str] = Field(None, title="Produto ou serviço")
    detalhes_servico: Optional[str] = Field(None, title="Detalhes do produto ou serviço",
                                            json_schema_extra=MULTILINE)
    tipo_documento: Optional[str] = Field(None, title="Tipo de documento")
    numero_documento: Optional[str] = Field(None, title="Número do documento")
    data_ocorrencia: Optional[date] = Field(None, title="Data da ocorrência")
    data_cancelamento: Optional[date] = Field(None, title="Data do cancelamento")
    forma_pagamento: Optional[str] = Field(None, title="Forma de pagamento")
    valor_compra: Optional[str] = Field(None, title="Valor da compra")
    descricao: Required = Field(title="Descrição", json_schema_extra=MULTILINE)
    pedido_consumidor: Optional[str] = Field(None, title="Pedido do consumidor", json_schema_extra=MULTILINE)

    @field_validator("cnpj")
    @classmethod
    def cnpj_has_14_digits(cls, value: str) -> str:
        digits = only_digits(value)
        if len(digits) != 14:
            raise ValueError("CNPJ inválido")
        return digits


class AtendimentoJuridico(BaseModel):
    assunto: Required = Field(title="Assunto")
    descricao: Required = Field(title="Descrição", json_schema_extra=MULTILINE)
    data_acontecimento: Optional[date] = Field(None, title="Data do acontecimento")
    cep_acontecimento: Optional[str] = Field(None, title="CEP")
    cidade_acontecimento: Optional[str] = Field(None, title="Cidade")
    bairro_acontecimento: Optional[str] = Field(None, title="Bairro")
    endereco_acontecimento: Optional[str] = Field(None, title="Endereço")
    numero_acontecimento: Optional[str] = Field(None, title="Número")


class SolicitacaoBalcao(BaseModel):
    assunto: Required = Field(title="Assunto")
    descricao: Required = Field(title="Descrição", json_schema_extra=MULTILINE)


class ManifestacaoOuvidoria(BaseModel):
    tipo_manifestacao: Literal[TIPOS_MANIFESTACAO] = Field(title="Tipo de manifestação")
    assunto: Required = Field(title="Assunto")
    descricao: Required = Field(title="Descrição", json_schema_extra=MULTILINE)
    local_fato: Optional[str] = Field(None, title="Local do fato")
    data_fato: Optional[date] = Field(None, title="Data do fato")
    envolvidos: Optional[str] = Field(None, title="Pessoas envolvidas")


class AtendimentoProcuradoria(BaseModel):
    tipo_atendimento: Literal[TIPOS_ATENDIMENTO_MULHER] = Field(title="Tipo de atendimento")
    tipo_violencia: Optional[Literal[TIPOS_VIOLENCIA]] = Field(None, title="Tipo de violência")
    assunto: Required = Field(title="Assunto")
    descricao: Required = Field(title="Descrição", json_schema_extra=MULTILINE)
    data_fato: Optional[date] = Field(None, title="Data do fato")
    nome_agressor: Optional[str] = Field(None, title="Nome do agressor")
    relacao_agressor: Optional[str] = Field(None, title="Relação com o agressor")
    relacao_vitima: Optional[Literal[RELACOES_VITIMA]] = Field(None, title="Quem é a vítima?")
    endereco_acontecimento: Optional[str] = Field(None, title="Endereço do acontecimento")
    ponto_referencia: Optional[str] = Field(None, title="Ponto de referência")


class SolicitacaoVereador(BaseModel):
    vereador_id: Required = Field(title="Vereador(a)")
    vereador_nome: Required = Field(title="Nome do vereador(a)")
    assunto: Required = Field(title="Assunto")
    tipo_atendimento: Literal["Presencial", "Online"] = Field("Presencial", title="Tipo de atendimento")
    data_preferencial: Optional[date] = Field(None, title="Data preferencial")
    horario_preferencial: Literal["Manhã", "Tarde"] = Field("Manhã", title="Horário preferencial")
    descricao: Required = Field(title="Descrição", json_schema_extra=MULTILINE)
