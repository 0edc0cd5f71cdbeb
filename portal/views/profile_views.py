# Own profile page and admin user management
import pandas as pd
import streamlit as st

from portal.auth.auth_service import AuthService
from portal.errors import PortalError
from portal.models.profile import DEFAULT_ROLE, ROLES, UserProfile
from portal.models.submission import Attachment
from portal.services.profile_service import EDITABLE_FIELDS, ProfileService, search_users
from portal.views.common import clear_session, current_session, flash, handle_error, page_scope, pause_and_rerun

FIELD_LABELS = {
    "name": "Nome completo",
    "phone": "Telefone",
    "cpf": "CPF",
    "sexo": "Sexo",
    "estado_civil": "Estado civil",
    "cep": "CEP",
    "address": "Endereço",
    "numero": "Número",
    "complemento": "Complemento",
    "neighborhood": "Bairro",
    "city": "Cidade",
    "state": "Estado",
}


def _profile_inputs(profile: UserProfile, key_prefix: str):
    values = {}
    cols = st.columns(2)
    for index, field in enumerate(EDITABLE_FIELDS):
        values[field] = cols[index % 2].text_input(FIELD_LABELS[field], value=getattr(profile, field) or "",
                                                   key=f"{key_prefix}_{field}")
    return values


class ProfileViews:
    def __init__(self, profile_service: ProfileService, auth_service: AuthService):
        self.profiles = profile_service
        self.auth = auth_service

    def render_profile(self):
        ctx = current_session()
        profile = ctx.profile
        st.header("👤 Meu Perfil")
        c1, c2 = st.columns([1, 3])
        with c1:
            if profile.avatar:
                st.image(Attachment(name="avatar", type="image", data=profile.avatar).decode(), width=150)
            else:
                st.markdown("<div style='font-size: 6rem; text-align: center;'>👤</div>", unsafe_allow_html=True)
        with c2:
            st.subheader(profile.display_name)
            st.write(f"📧 {ctx.email}")
            st.write(f"🏷️ {profile.tipo}")

        with st.expander("🖼️ Alterar foto"):
            limit_mb = self.profiles.max_avatar_bytes / (1024 * 1024)
            uploaded_file = st.file_uploader(f"Imagem (PNG ou JPG, máx. {limit_mb:g}MB)", type=["png", "jpg", "jpeg"])
            if uploaded_file and st.button("Salvar foto"):
                try:
                    self.profiles.set_avatar(ctx, uploaded_file.name, uploaded_file.type, uploaded_file.getvalue())
                    flash('success', "✅ Foto atualizada!")
                    st.rerun()
                except PortalError as e:
                    handle_error(e)

        with st.form("profile_form"):
            values = _profile_inputs(profile, "profile")
            if st.form_submit_button("Salvar Alterações", type="primary"):
                try:
                    self.profiles.update_own(ctx, values)
                    st.success("✅ Perfil atualizado com sucesso!")
                    pause_and_rerun()
                except PortalError as e:
                    handle_error(e)

        c1, c2 = st.columns(2)
        if c1.button("🔑 Alterar Senha", use_container_width=True):
            try:
                self.auth.send_password_reset(ctx.email)
                st.success(f"Enviamos um link de redefinição de senha para {ctx.email}.")
            except PortalError as e:
                st.error(e.message)
        if c2.button("🚪 Sair da conta", use_container_width=True):
            self.auth.sign_out(ctx)
            clear_session()
            st.rerun()

    def render_admin_users(self):
        ctx = current_session()
        st.header("⚙️ Gerenciar Usuários")
        try:
            handle = page_scope().open("users", lambda: self.profiles.subscribe_users(ctx))
        except PortalError as e:
            handle_error(e)
            return

        if st.session_state.edit_user_id:
            self._render_edit_user_form(handle.items)
            return

        search = st.text_input("🔎 Buscar por nome ou e-mail")
        users = search_users(handle.items, search)
        if not users:
            st.info("Nenhum usuário encontrado.")
            return
        st.dataframe(pd.DataFrame([{"Nome": u.name, "E-mail": u.email, "Tipo": u.tipo} for u in users]),
                     use_container_width=True, hide_index=True)
        for user in users:
            c1, c2 = st.columns([5, 1])
            c1.write(f"**{user.display_name}** ({user.email or 'sem e-mail'}) - `{user.tipo}`")
            if c2.button("✏️", key=f"edit_user_{user.uid}", help="Editar Usuário"):
                st.session_state.edit_user_id = user.uid
                st.rerun()

    def _render_edit_user_form(self, users):
        user = next((u for u in users if u.uid == st.session_state.edit_user_id), None)
        if user is None:
            st.session_state.edit_user_id = None
            st.error("Usuário não encontrado.")
            return
        st.subheader(f"Editando Usuário: {user.display_name}")
        with st.form("edit_user_form"):
            values = _profile_inputs(user, f"edit_{user.uid}")
            values["tipo"] = st.selectbox("Tipo de usuário", ROLES,
                                          index=ROLES.index(user.tipo) if user.tipo in ROLES else ROLES.index(DEFAULT_ROLE))
            c1, c2 = st.columns(2)
            if c1.form_submit_button("Salvar Alterações", type="primary"):
                try:
                    self.profiles.update_user(current_session(), user.uid, values)
                    st.success("Usuário atualizado com sucesso!")
                    st.session_state.edit_user_id = None
                    pause_and_rerun()
                except ValueError as e:
                    st.error(str(e))
                except PortalError as e:
                    handle_error(e)
            if c2.form_submit_button("Cancelar"):
                st.session_state.edit_user_id = None
                st.rerun()
