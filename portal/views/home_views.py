# Home page, council roster and the notification bell
import streamlit as st

from portal.domains import DOMAINS
from portal.errors import PortalError, RosterUnavailableError
from portal.services.notification_service import NotificationService
from portal.views.common import PAGE_ROSTER, citizen_page, current_session, format_datetime, go_to, handle_error
from portal.views.submission_views import load_roster

SERVICE_BLURBS = {
    "procon": ("🛒", "Reclamações e denúncias sobre relações de consumo."),
    "juridico": ("⚖️", "Orientação jurídica gratuita para a população."),
    "balcao": ("🏛️", "Solicitações e informações gerais sobre a Câmara."),
    "ouvidoria": ("📣", "Reclamações, sugestões, denúncias, elogios e críticas."),
    "procuradoria": ("💜", "Acolhimento e apoio às mulheres em situação de violência."),
    "vereadores": ("🤝", "Agende um atendimento com um vereador(a)."),
}


class HomeViews:
    def __init__(self, notification_service: NotificationService, open_data_url: str):
        self.notifications = notification_service
        self.open_data_url = open_data_url

    def render_home(self):
        ctx = current_session()
        st.header(f"Olá, {ctx.display_name}! 👋")
        st.write("Escolha um dos serviços da Câmara Municipal:")
        cols = st.columns(3)
        for index, domain in enumerate(DOMAINS.values()):
            icon, blurb = SERVICE_BLURBS.get(domain.key, ("📄", ""))
            with cols[index % 3].container(border=True):
                st.markdown(f"### {icon} {domain.title}")
                st.caption(blurb)
                if st.button("Acessar", key=f"home_{domain.key}", use_container_width=True):
                    go_to(citizen_page(domain.key))
        st.divider()
        if st.button("👥 Conheça nossos vereadores"):
            go_to(PAGE_ROSTER)

    def render_roster(self):
        st.header("👥 Nossos Vereadores")
        try:
            roster = load_roster(self.open_data_url)
        except RosterUnavailableError as e:
            st.error(e.message)
            return
        if not roster:
            st.info("Nenhum vereador encontrado.")
            return
        cols = st.columns(3)
        for index, vereador in enumerate(roster):
            with cols[index % 3].container(border=True):
                if vereador.get('foto'):
                    st.image(vereador['foto'], use_container_width=True)
                st.markdown(f"**{vereador['nome']}**")
                if vereador.get('partido'):
                    st.caption(vereador['partido'])

    def render_notification_bell(self):
        try:
            unread = self.notifications.unread_for(current_session())
        except PortalError as e:
            handle_error(e)
            return
        label = f"🔔 ({len(unread)})" if unread else "🔔"
        if st.button(label, help="Ver notificações"):
            st.session_state.show_notifications = not st.session_state.get('show_notifications', False)
            st.rerun()

    @st.dialog("🔔 Notificações")
    def render_notifications_modal(self):
        ctx = current_session()
        try:
            notifications = self.notifications.list_for(ctx)
        except PortalError as e:
            st.error(e.message)
            notifications = []
        if not notifications:
            st.info("Nenhuma notificação.")
        for notification in notifications:
            with st.container(border=True):
                icon = "✉️" if notification.is_read else "🆕"
                st.markdown(f"{icon} **{notification.titulo}**")
                st.write(notification.descricao)
                st.caption(format_datetime(notification.timestamp))
                if not notification.is_read and st.button("Marcar como lida", key=f"read_{notification.id}"):
                    try:
                        self.notifications.mark_read(ctx, notification.id)
                    except PortalError as e:
                        st.error(e.message)
                    st.rerun(scope="fragment")
        if st.button("Fechar", key="close_notifications"):
            st.session_state.show_notifications = False
            st.rerun()
