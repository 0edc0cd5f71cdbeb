import logging

import streamlit as st

from portal.auth.auth_service import AuthService
from portal.config import Settings, load_settings
from portal.domains import DOMAINS, PROCURADORIA, get_domain
from portal.errors import PortalError
from portal.services.firebase_service import FirebaseService
from portal.services.live_query import OPEN_SCOPES
from portal.services.notification_service import NotificationService
from portal.services.panic_service import PanicService
from portal.services.profile_service import ProfileService
from portal.services.submission_service import SubmissionService
from portal.views.auth_views import AuthViews
from portal.views.common import (
    PAGE_HOME,
    PAGE_LOGIN,
    PAGE_PANIC_CONFIG,
    PAGE_PROFILE,
    PAGE_ROSTER,
    PAGE_USERS,
    admin_page,
    citizen_page,
    clear_session,
    current_session,
    go_to,
    init_session_state,
    show_flash,
)
from portal.views.home_views import HomeViews
from portal.views.panic_views import PanicViews
from portal.views.profile_views import ProfileViews
from portal.views.submission_views import SubmissionViews

# Configurar o logging para monitorizar a aplicação
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# --- CONFIGURAÇÃO DA PÁGINA ---
st.set_page_config(page_title="Portal de Serviços", page_icon="🏛️", layout="wide")


class ViewManager:
    def __init__(self, settings: Settings, db_service: FirebaseService):
        self.settings = settings
        self.db = db_service
        self.auth = AuthService(db_service, settings.firebase_web_api_key,
                                timeout_minutes=settings.session_timeout_minutes)
        notifications = NotificationService(db_service)
        submissions = SubmissionService(db_service, notifications,
                                        max_attachment_bytes=settings.max_attachment_bytes,
                                        max_admin_attachment_bytes=settings.max_admin_attachment_bytes)
        self.auth_views = AuthViews(self.auth)
        self.home_views = HomeViews(notifications, settings.open_data_base_url)
        self.submission_views = SubmissionViews(submissions, settings.open_data_base_url,
                                                refresh_seconds=settings.live_refresh_seconds)
        self.profile_views = ProfileViews(ProfileService(db_service, settings.max_attachment_bytes), self.auth)
        self.panic_views = PanicViews(PanicService(db_service))
        init_session_state()

    def run(self):
        OPEN_SCOPES.sweep(self.settings.session_timeout_minutes * 60)
        ctx = current_session()
        if ctx is None:
            self.render_public_app()
            return
        if self.auth.is_session_expired(ctx):
            logger.info(f"Sessão do usuário {ctx.uid} expirou.")
            self.logout(expired=True)
        self.auth.touch(ctx)
        if st.session_state.profile_page != st.session_state.page:
            self.auth.refresh_profile(ctx)
            st.session_state.profile_page = st.session_state.page
        self.render_main_app()

    def logout(self, expired: bool = False):
        self.auth.sign_out(current_session())
        clear_session()
        init_session_state()
        if expired:
            st.session_state.flash = ('warning', "Sessão expirada. Faça login novamente.")
        st.rerun()

    def render_public_app(self):
        if st.session_state.page not in (PAGE_LOGIN, PAGE_ROSTER):
            st.session_state.page = PAGE_LOGIN
        with st.sidebar:
            st.header("🏛️ Portal de Serviços")
            if st.button("🔐 Entrar", use_container_width=True):
                go_to(PAGE_LOGIN)
            if st.button("👥 Nossos Vereadores", use_container_width=True):
                go_to(PAGE_ROSTER)
        if st.session_state.page == PAGE_ROSTER:
            self.home_views.render_roster()
        else:
            self.auth_views.render_login_page()

    def render_main_app(self):
        self.render_sidebar()
        col1, col2 = st.columns([0.85, 0.15])
        with col1:
            st.title("🏛️ Portal de Serviços da Câmara")
        with col2:
            self.home_views.render_notification_bell()
        if st.session_state.get('show_notifications', False):
            self.home_views.render_notifications_modal()
        show_flash()
        self.render_page(st.session_state.page)

    def render_page(self, page: str):
        ctx = current_session()
        if page.startswith("domain:"):
            domain = get_domain(page.split(":", 1)[1])
            if domain is PROCURADORIA:
                self.panic_views.render_panic_section()
            self.submission_views.render_citizen_page(domain)
        elif page.startswith("admin:"):
            self.submission_views.render_dashboard(get_domain(page.split(":", 1)[1]))
        elif page == PAGE_ROSTER:
            self.home_views.render_roster()
        elif page == PAGE_PROFILE:
            self.profile_views.render_profile()
        elif page == PAGE_PANIC_CONFIG:
            self.panic_views.render_config_page()
        elif page == PAGE_USERS and ctx.is_admin:
            self.profile_views.render_admin_users()
        else:
            self.home_views.render_home()

    def _nav_button(self, label: str, page: str):
        current = st.session_state.page == page
        if st.button(label, key=f"nav_{page}", use_container_width=True,
                     type="primary" if current else "secondary"):
            go_to(page)

    def render_sidebar(self):
        ctx = current_session()
        with st.sidebar:
            st.write(f"👤 **{ctx.display_name}** ({ctx.role})")
            self._nav_button("🏠 Início", PAGE_HOME)
            self._nav_button("👤 Meu Perfil", PAGE_PROFILE)
            self._nav_button("👥 Nossos Vereadores", PAGE_ROSTER)
            st.divider()
            st.subheader("Serviços")
            for domain in DOMAINS.values():
                self._nav_button(domain.title, citizen_page(domain.key))
            triage_domains = ctx.triage_domains()
            if triage_domains or ctx.is_admin:
                st.divider()
                self.render_admin_menu(triage_domains)
            st.divider()
            if st.button("Logout", use_container_width=True):
                self.logout()

    def render_admin_menu(self, triage_domains):
        st.header("⚙️ Administração")
        for domain in triage_domains:
            self._nav_button(f"📊 {domain.title}", admin_page(domain.key))
        if current_session().is_admin:
            self._nav_button("👥 Usuários", PAGE_USERS)


def main():
    try:
        settings = load_settings()
    except PortalError as e:
        st.error(e.message)
        st.stop()
    try:
        db_service = FirebaseService(settings.firebase_credentials)
        app = ViewManager(settings, db_service)
        app.run()
    except PortalError as e:
        st.error(e.message)
        logger.critical(f"Erro crítico na aplicação: {e}", exc_info=True)
    except Exception as e:
        st.error("Ocorreu um erro crítico na aplicação.")
        st.exception(e)
        logger.critical(f"Erro crítico na aplicação: {e}", exc_info=True)


if __name__ == "__main__":
    main()
