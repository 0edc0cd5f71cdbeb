# Generic request form, history and staff dashboard, driven by a DomainDescriptor
import typing
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
import plotly.express as px
import streamlit as st
from pydantic import ValidationError

from portal.domains import PROCON, VEREADORES, DomainDescriptor, get_domain
from portal.errors import CnpjLookupError, PortalError, RosterUnavailableError
from portal.models.submission import Submission
from portal.services.export import field_title, status_color, submissions_frame, to_excel
from portal.services.open_data import CouncilRosterClient, lookup_cnpj
from portal.services.submission_service import MB, SubmissionService, filter_by_status, status_histogram
from portal.views.common import (
    current_session,
    flash,
    format_datetime,
    handle_error,
    page_scope,
    pause_and_rerun,
    validation_message,
)

UPLOAD_TYPES = ["png", "jpg", "jpeg", "pdf"]
STATUS_ICONS = {"green": "🟢", "red": "🔴", "yellow": "🟡", "blue": "🔵"}


def literal_options(annotation) -> Optional[Tuple[str, ...]]:
    """Choices of a Literal (or Optional[Literal]) field, else None."""
    if typing.get_origin(annotation) is typing.Union:
        args = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        annotation = args[0] if len(args) == 1 else annotation
    if typing.get_origin(annotation) is typing.Literal:
        return typing.get_args(annotation)
    return None


def is_date_field(annotation) -> bool:
    return annotation is date or date in typing.get_args(annotation)


@st.cache_data(ttl=3600, show_spinner=False)
def load_roster(base_url: str) -> List[Dict[str, Any]]:
    return [v.model_dump() for v in CouncilRosterClient(base_url).fetch()]


class SubmissionViews:
    def __init__(self, submission_service: SubmissionService, open_data_url: str, refresh_seconds: int = 5):
        self.submissions = submission_service
        self.open_data_url = open_data_url
        self.refresh_seconds = refresh_seconds

    # --- Citizen side ---

    def render_citizen_page(self, domain: DomainDescriptor):
        st.header(domain.title)
        tab_new, tab_history = st.tabs(["📝 Nova Solicitação", "📜 Minhas Solicitações"])
        with tab_new:
            self.render_form(domain)
        with tab_history:
            self.render_history(domain)

    def _render_field(self, domain: DomainDescriptor, name: str, info):
        label = info.title or name.replace("_", " ").capitalize()
        if info.is_required():
            label += " *"
        key = f"{domain.key}_{name}"
        options = literal_options(info.annotation)
        if options:
            default = info.get_default()
            index = options.index(default) if default in options else None
            return st.selectbox(label, options, index=index, placeholder="Selecione...", key=key)
        if is_date_field(info.annotation):
            return st.date_input(label, value=None, format="DD/MM/YYYY", key=key)
        if (info.json_schema_extra or {}).get("multiline"):
            return st.text_area(label, key=key)
        return st.text_input(label, key=key)

    def _render_cnpj_lookup(self, domain: DomainDescriptor) -> Dict[str, Any]:
        st.text_input(field_title(domain, "cnpj") + " *", key=f"{domain.key}_cnpj", placeholder="Digite o CNPJ")
        company = st.session_state.get(f"{domain.key}_company")
        if st.button("🔎 Buscar empresa", key=f"{domain.key}_cnpj_lookup"):
            try:
                company = lookup_cnpj(st.session_state[f"{domain.key}_cnpj"]).model_dump()
            except (ValueError, CnpjLookupError) as e:
                company = None
                st.error(str(e))
            st.session_state[f"{domain.key}_company"] = company
        if company:
            st.success(f"**{company['razao_social']}** ({company.get('nome_fantasia') or 'sem nome fantasia'}) "
                       f"| Situação: {company.get('situacao') or 'N/A'} | {company.get('municipio') or ''}"
                       f"/{company.get('uf') or ''}")
        return {"cnpj": st.session_state.get(f"{domain.key}_cnpj", ""),
                "razao_social": company['razao_social'] if company else None}

    def _render_roster_select(self, domain: DomainDescriptor) -> Optional[Dict[str, Any]]:
        try:
            roster = load_roster(self.open_data_url)
        except RosterUnavailableError as e:
            st.error(e.message)
            return None
        chosen = st.selectbox(field_title(domain, "vereador_id") + " *", roster, index=None,
                              format_func=lambda v: f"{v['nome']} ({v['partido']})" if v.get('partido') else v['nome'],
                              placeholder="Selecione o vereador(a)...", key=f"{domain.key}_vereador")
        return {"vereador_id": chosen['id'], "vereador_nome": chosen['nome']} if chosen else {}

    def render_form(self, domain: DomainDescriptor):
        ctx = current_session()
        managed: Dict[str, Any] = {}
        if domain is PROCON:
            managed = self._render_cnpj_lookup(domain)
        elif domain is VEREADORES:
            managed = self._render_roster_select(domain)
            if managed is None:
                return

        with st.form(f"form_{domain.key}", clear_on_submit=False):
            values = {}
            for name, info in domain.form_model.model_fields.items():
                if name in domain.managed_fields:
                    continue
                values[name] = self._render_field(domain, name, info)
            uploads = []
            if domain.issues_protocol:
                limit_mb = self.submissions.max_attachment_bytes / MB
                uploads = st.file_uploader(f"Anexos (PNG, JPG ou PDF, máx. {limit_mb:g}MB cada)", type=UPLOAD_TYPES,
                                           accept_multiple_files=True, key=f"{domain.key}_uploads")
            anonymous = False
            if domain.allows_anonymous:
                anonymous = st.checkbox("Enviar de forma anônima", key=f"{domain.key}_anonymous")
            if not st.form_submit_button("Enviar Solicitação", type="primary"):
                return

        values.update(managed)
        form_data = {key: (value or None) if isinstance(value, str) else value for key, value in values.items()}
        attachments, rejected = self.submissions.prepare_attachments(
            (f.name, f.type, f.getvalue()) for f in uploads or []
        )
        for message in rejected:
            st.warning(message)
        with st.spinner("Enviando solicitação..."):
            try:
                submission = self.submissions.submit(ctx, domain, form_data, anonymous=anonymous,
                                                     attachments=attachments)
            except ValidationError as e:
                st.error(validation_message(e, domain.form_model))
                return
            except PortalError as e:
                handle_error(e)
                return
        if submission.protocolo:
            flash('success', f"✅ Solicitação enviada! Protocolo: **{submission.protocolo}**")
        else:
            flash('success', "✅ Solicitação enviada com sucesso!")
        st.session_state.pop(f"{domain.key}_company", None)
        pause_and_rerun()

    def render_history(self, domain: DomainDescriptor):
        ctx = current_session()
        try:
            handle = page_scope().open(f"user_{domain.key}", lambda: self.submissions.subscribe_user(ctx, domain))
        except PortalError as e:
            handle_error(e)
            return

        @st.fragment(run_every=self.refresh_seconds)
        def live_history():
            if not handle.loaded:
                st.info("Carregando suas solicitações...")
                return
            records = handle.items
            if not records:
                st.info("Você ainda não possui solicitações.")
                return
            for record in records:
                self._render_history_card(domain, record)

        live_history()

    def _render_history_card(self, domain: DomainDescriptor, record: Submission):
        with st.container(border=True):
            header = f"**{record.subject}**"
            if record.protocolo:
                header += f" · Protocolo `{record.protocolo}`"
            st.markdown(f"{header}\n\n**Status:** {self._status_badge(domain, record.status)} | "
                        f"**Enviada em:** `{format_datetime(record.created_at)}`")
            with st.expander("Ver detalhes"):
                self._render_form_data(domain, record)
                self._render_messages(record)
                self._render_attachments(record, key_prefix=f"hist_{record.id}")

    # --- Staff side ---

    def render_dashboard(self, domain: DomainDescriptor):
        ctx = current_session()
        st.header(f"Painel · {domain.title}")
        try:
            handle = page_scope().open(f"all_{domain.key}", lambda: self.submissions.subscribe_all(ctx, domain))
        except PortalError as e:
            handle_error(e)
            return

        if st.session_state.detail:
            self.render_detail_modal()

        @st.fragment(run_every=self.refresh_seconds)
        def live_dashboard():
            if not handle.loaded:
                st.info("Carregando solicitações...")
                return
            records = handle.items
            self._render_metrics(domain, records)
            tabs = st.tabs(list(domain.tabs))
            for tab, name in zip(tabs, domain.tabs):
                with tab:
                    self._render_paginated_rows(filter_by_status(records, name), domain, key_suffix=f"{domain.key}_{name}")

        live_dashboard()

        records = handle.items
        if records:
            df = submissions_frame(domain, records).dropna(axis=1, how="all")
            st.download_button(label="📥 Exportar para Excel", data=to_excel(df, domain, title=domain.title),
                               file_name=f"{domain.key}_{date.today():%Y%m%d}.xlsx",
                               mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")

    def _render_metrics(self, domain: DomainDescriptor, records: List[Submission]):
        histogram = status_histogram(domain, records)
        cols = st.columns(len(domain.statuses) + 1)
        cols[0].metric("Total", len(records))
        for col, status in zip(cols[1:], domain.statuses):
            col.metric(status, histogram[status])
        chart_df = pd.DataFrame({"Status": list(histogram), "Quantidade": list(histogram.values())})
        st.plotly_chart(px.bar(chart_df, x="Status", y="Quantidade", title="Distribuição de Status",
                               text_auto=True, color="Status"), use_container_width=True)

    def _render_paginated_rows(self, records: List[Submission], domain: DomainDescriptor, key_suffix: str):
        if not records:
            st.info("Nenhuma solicitação encontrada.")
            return

        items_per_page = st.selectbox("Itens por página", [5, 10, 20], key=f"items_{key_suffix}", index=1)
        total_pages = max(1, (len(records) - 1) // items_per_page + 1)
        page_key = f"page_{key_suffix}"
        if page_key not in st.session_state:
            st.session_state[page_key] = 1
        st.session_state[page_key] = min(st.session_state[page_key], total_pages)

        c1, c2, c3 = st.columns([1, 2, 1])
        if c1.button("⬅️", key=f"prev_{key_suffix}", disabled=(st.session_state[page_key] <= 1)):
            st.session_state[page_key] -= 1
            st.rerun(scope="fragment")
        if c3.button("➡️", key=f"next_{key_suffix}", disabled=(st.session_state[page_key] >= total_pages)):
            st.session_state[page_key] += 1
            st.rerun(scope="fragment")

        c2.write(f"Página **{st.session_state[page_key]}** de **{total_pages}**")
        start_idx = (st.session_state[page_key] - 1) * items_per_page
        for record in records[start_idx: start_idx + items_per_page]:
            self._render_row(domain, record, key_suffix)

    def _render_row(self, domain: DomainDescriptor, record: Submission, key_suffix: str):
        with st.container(border=True):
            applicant = "Anônimo" if record.is_anonymous else (record.dados_usuario or {}).get("name", "N/A")
            c1, c2 = st.columns([5, 1])
            c1.markdown(f"**{record.subject}**\n\n**Status:** {self._status_badge(domain, record.status)} | "
                        f"**Solicitante:** `{applicant}` em `{format_datetime(record.created_at)}`")
            if c2.button("🔍", key=f"open_{key_suffix}_{record.id}", help="Ver detalhes"):
                st.session_state.detail = {'domain': domain.key, 'id': record.id}
                st.rerun()

    @st.dialog("Detalhes da Solicitação", width="large")
    def render_detail_modal(self):
        ctx = current_session()
        detail = st.session_state.detail
        domain = get_domain(detail['domain'])
        try:
            record = self.submissions.get(domain, detail['id'], ctx)
        except PortalError as e:
            handle_error(e)
            return

        st.subheader(record.subject)
        if record.protocolo:
            st.caption(f"Protocolo: {record.protocolo}")
        with st.expander("👤 Solicitante", expanded=True):
            if record.is_anonymous:
                st.info("Solicitação anônima.")
            else:
                profile = self.submissions.resolve_submitter_profile(record)
                for key, value in profile.items():
                    if key != "id":
                        st.markdown(f"**{key.replace('_', ' ').capitalize()}:** {value}")
        with st.expander("📄 Dados da solicitação", expanded=True):
            self._render_form_data(domain, record)

        with st.form("status_form"):
            current = domain.statuses.index(record.status) if record.status in domain.statuses else 0
            new_status = st.selectbox("Status", domain.statuses, index=current)
            if st.form_submit_button("Atualizar Status", type="primary"):
                try:
                    self.submissions.change_status(ctx, domain, record.id, new_status)
                    st.toast(f"✅ Status alterado para '{new_status}'.")
                    st.rerun(scope="fragment")
                except (PortalError, ValueError) as e:
                    st.error(str(e))

        st.markdown("##### 💬 Mensagens")
        self._render_messages(record)
        with st.form("message_form", clear_on_submit=True):
            text = st.text_area("Nova mensagem")
            notify = st.checkbox("Notificar o solicitante", value=True)
            if st.form_submit_button("Enviar Mensagem"):
                try:
                    self.submissions.append_message(ctx, domain, record.id, text, notify=notify)
                    st.rerun(scope="fragment")
                except (PortalError, ValueError) as e:
                    st.error(str(e))

        st.markdown("##### 📎 Anexos")
        self._render_attachments(record, key_prefix=f"detail_{record.id}")
        limit_mb = self.submissions.max_admin_attachment_bytes / MB
        uploaded_file = st.file_uploader(f"Adicionar anexo (máx. {limit_mb:g}MB)", key=f"admin_upload_{record.id}")
        if uploaded_file and st.button("Enviar Anexo"):
            try:
                self.submissions.attach_file(ctx, domain, record.id, uploaded_file.name,
                                             uploaded_file.type or "application/octet-stream",
                                             uploaded_file.getvalue())
                st.rerun(scope="fragment")
            except PortalError as e:
                st.error(e.message)

        if st.button("Fechar", key="close_detail"):
            st.session_state.detail = None
            st.rerun()

    # --- Shared pieces ---

    @staticmethod
    def _status_badge(domain: DomainDescriptor, status: Optional[str]) -> str:
        if not status:
            return "`Não Classificado`"
        return f"{STATUS_ICONS[status_color(domain, status)]} `{status}`"

    @staticmethod
    def _render_form_data(domain: DomainDescriptor, record: Submission):
        for key, value in record.dados_solicitacao.items():
            if value in (None, ""):
                continue
            st.markdown(f"**{field_title(domain, key)}:** {value}")

    @staticmethod
    def _render_messages(record: Submission):
        messages = record.ordered_messages()
        if not messages:
            st.caption("Nenhuma mensagem.")
        for message in messages:
            role = "assistant" if message.sender == "admin" else "user"
            with st.chat_message(role):
                st.write(message.text)
                st.caption(format_datetime(message.timestamp))

    @staticmethod
    def _render_attachments(record: Submission, key_prefix: str):
        if not record.anexos:
            st.caption("Nenhum anexo.")
        for index, attachment in enumerate(record.anexos):
            st.download_button(f"📎 {attachment.name}", data=attachment.decode(), file_name=attachment.name,
                               mime=attachment.type, key=f"{key_prefix}_att_{index}")
