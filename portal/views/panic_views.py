# Panic button and trusted-contact configuration pages
import json
from pathlib import Path
from typing import Any, Dict

import streamlit as st
import streamlit.components.v1 as components
from pydantic import ValidationError

from portal.errors import GeolocationError, PortalError
from portal.models.submission import PanicContact
from portal.services.panic_service import PanicService, Position
from portal.views.common import (
    PAGE_PANIC_CONFIG,
    citizen_page,
    current_session,
    flash,
    go_to,
    handle_error,
    validation_message,
)

# Asks the browser for its position once per mount and returns
# {"lat": ..., "lng": ...} or {"error": ...} to the script.
_geolocation = components.declare_component("geolocation", path=str(Path(__file__).parent / "geolocation"))


def position_from(result: Dict[str, Any]) -> Position:
    if not result or "error" in result:
        raise GeolocationError((result or {}).get("error") or "Não foi possível obter sua localização.")
    return Position(latitude=float(result["lat"]), longitude=float(result["lng"]))


class PanicViews:
    def __init__(self, panic_service: PanicService):
        self.panic = panic_service

    def render_panic_section(self):
        st.error("**Em situação de perigo?** O botão de pânico envia sua localização por SMS "
                 "para o seu contato de confiança.")
        c1, c2 = st.columns(2)
        if c1.button("⚙️ Configurar Botão de Pânico", use_container_width=True):
            go_to(PAGE_PANIC_CONFIG)
        if c2.button("🚨 Botão de Pânico", type="primary", use_container_width=True):
            try:
                self.panic.require_contact(current_session())
                st.session_state.panic_armed = True
            except PortalError as e:
                handle_error(e)
        if st.session_state.panic_armed:
            self._render_alert()

    def _render_alert(self):
        result = _geolocation(key="panic_geolocation", default=None)
        if result is None:
            st.info("📍 Obtendo sua localização...")
            return
        st.session_state.panic_armed = False
        try:
            alert = self.panic.trigger(current_session(), lambda: position_from(result))
        except GeolocationError as e:
            st.error(e.message)
            return
        except PortalError as e:
            handle_error(e)
            return
        st.warning(alert.message)
        st.link_button("📲 Enviar SMS de socorro", alert.sms_uri, type="primary", use_container_width=True)
        components.html(f"<script>window.parent.location.href = {json.dumps(alert.sms_uri)};</script>", height=0)

    def render_config_page(self):
        st.header("⚙️ Configurar Botão de Pânico")
        st.caption("Cadastre o telefone de uma pessoa de confiança. Ele receberá o SMS de socorro.")
        ctx = current_session()
        try:
            contact = self.panic.get_contact(ctx)
        except PortalError as e:
            handle_error(e)
            return
        with st.form("panic_contact_form"):
            telefone = st.text_input("Telefone de confiança *", value=contact.telefone if contact else "")
            email = st.text_input("E-mail de confiança (opcional)", value=(contact.email or "") if contact else "")
            if st.form_submit_button("Salvar", type="primary"):
                try:
                    self.panic.save_contact(ctx, telefone, email)
                except ValidationError as e:
                    st.error(validation_message(e, PanicContact))
                except PortalError as e:
                    handle_error(e)
                else:
                    flash('success', "✅ Contato de confiança salvo!")
                    go_to(citizen_page("procuradoria"))
