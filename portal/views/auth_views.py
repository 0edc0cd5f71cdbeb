# Login, registration and password reset pages
import streamlit as st

from portal.auth.auth_service import AuthService
from portal.errors import AuthError
from portal.views.common import PAGE_HOME, flash, show_flash


class AuthViews:
    def __init__(self, auth_service: AuthService):
        self.auth = auth_service

    def render_login_page(self):
        _, col2, _ = st.columns([1, 2, 1])
        with col2:
            st.markdown(
                """<div style="text-align: center; margin-bottom: 2rem;"><div style="font-family: sans-serif; font-size: 2.6rem; font-weight: 900;">Câmara Municipal de Pacatuba</div><div style="font-family: sans-serif; font-size: 1.6rem; color: #1F6FB2;">Portal de Serviços</div></div>""",
                unsafe_allow_html=True)
            show_flash()
            tab_login, tab_register, tab_reset = st.tabs(["🔐 Entrar", "📝 Cadastrar", "🔑 Esqueci a senha"])
            with tab_login:
                self._render_login_form()
            with tab_register:
                self._render_registration_form()
            with tab_reset:
                self._render_reset_form()

    def _start_session(self, ctx):
        st.session_state.session = ctx
        st.session_state.page = PAGE_HOME
        st.rerun()

    def _render_login_form(self):
        with st.form("login_form"):
            email, password = st.text_input("E-mail"), st.text_input("Senha", type="password")
            if st.form_submit_button("Entrar", type="primary"):
                try:
                    ctx = self.auth.sign_in(email, password)
                except AuthError as e:
                    st.error(e.message)
                else:
                    self._start_session(ctx)

    def _render_registration_form(self):
        with st.form("registration_form"):
            name = st.text_input("Nome completo")
            email = st.text_input("E-mail")
            password = st.text_input("Senha", type="password")
            confirm_password = st.text_input("Confirmar senha", type="password")
            if st.form_submit_button("Cadastrar", type="primary"):
                try:
                    ctx = self.auth.sign_up(name, email, password, confirm_password)
                except AuthError as e:
                    st.error(e.message)
                else:
                    flash('success', "✅ Cadastro realizado! Complete seu perfil para agilizar os atendimentos.")
                    self._start_session(ctx)

    def _render_reset_form(self):
        with st.form("reset_form"):
            email = st.text_input("E-mail cadastrado")
            if st.form_submit_button("Enviar link de redefinição"):
                try:
                    self.auth.send_password_reset(email)
                    st.success("Se o e-mail estiver cadastrado, você receberá um link para redefinir a senha.")
                except AuthError as e:
                    st.error(e.message)
