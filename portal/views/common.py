# Session-state helpers shared by every page
import logging
import time
from typing import Any, Dict, Optional

import streamlit as st
from pydantic import ValidationError

from portal.auth.session import SessionContext
from portal.errors import (
    NotAuthenticatedError,
    PanicContactMissingError,
    PermissionDeniedError,
    PortalError,
    ProfileNotFoundError,
)
from portal.services.live_query import OPEN_SCOPES, SubscriptionScope

logger = logging.getLogger(__name__)

PAGE_LOGIN = "login"
PAGE_HOME = "home"
PAGE_ROSTER = "roster"
PAGE_PROFILE = "profile"
PAGE_PANIC_CONFIG = "panic_config"
PAGE_USERS = "users"

SESSION_DEFAULTS = {
    'session': None,
    'page': PAGE_LOGIN,
    'scope': None,
    'scope_page': None,
    'profile_page': None,
    'flash': None,
    'show_notifications': False,
    'detail': None,
    'edit_user_id': None,
    'panic_armed': False,
}


def citizen_page(domain_key: str) -> str:
    return f"domain:{domain_key}"


def admin_page(domain_key: str) -> str:
    return f"admin:{domain_key}"


def init_session_state(defaults: Optional[Dict[str, Any]] = None):
    for key, value in (defaults or SESSION_DEFAULTS).items():
        if key not in st.session_state:
            st.session_state[key] = value


def current_session() -> Optional[SessionContext]:
    return st.session_state.get('session')


def page_scope() -> SubscriptionScope:
    """Live queries owned by the page currently on screen."""
    page = st.session_state.page
    scope = st.session_state.scope
    if scope is None or st.session_state.scope_page != page:
        if scope is not None:
            OPEN_SCOPES.forget(scope)
            scope.release_all()
        scope = SubscriptionScope(owner=page)
        st.session_state.scope = scope
        st.session_state.scope_page = page
    OPEN_SCOPES.touch(scope)
    return scope


def release_scope():
    scope = st.session_state.get('scope')
    if scope is not None:
        OPEN_SCOPES.forget(scope)
        scope.release_all()
    st.session_state.scope = None
    st.session_state.scope_page = None


def go_to(page: str):
    if page != st.session_state.page:
        release_scope()
        st.session_state.detail = None
    st.session_state.page = page
    st.rerun()


def flash(level: str, message: str):
    """Message shown once, on the next run of the script."""
    st.session_state.flash = (level, message)


def show_flash():
    message = st.session_state.get('flash')
    if message:
        level, text = message
        getattr(st, level, st.info)(text)
        st.session_state.flash = None


def clear_session():
    release_scope()
    for key in list(st.session_state.keys()):
        del st.session_state[key]


def validation_message(error: ValidationError, model=None) -> str:
    first = error.errors()[0]
    field = first['loc'][0] if first.get('loc') else None
    title = None
    if model is not None and field in getattr(model, 'model_fields', {}):
        title = model.model_fields[field].title
    if title:
        return f"Verifique o campo '{title}': {first['msg']}"
    return f"Erro de validação: {first['msg']}"


def handle_error(error: PortalError):
    """Shows a service error inline, or redirects when the error names a missing precondition."""
    if isinstance(error, NotAuthenticatedError):
        clear_session()
        init_session_state()
        flash('warning', error.message)
        st.rerun()
    elif isinstance(error, ProfileNotFoundError):
        flash('warning', error.message)
        go_to(PAGE_PROFILE)
    elif isinstance(error, PanicContactMissingError):
        flash('warning', error.message)
        go_to(PAGE_PANIC_CONFIG)
    elif isinstance(error, PermissionDeniedError):
        logger.warning(f"Acesso negado: {error.message}")
        st.error(f"🚫 {error.message}")
    else:
        st.error(error.message or "Ocorreu um erro inesperado. Tente novamente.")


def format_datetime(value) -> str:
    if value is None:
        return "N/A"
    return value.strftime('%d/%m/%Y %H:%M')


def pause_and_rerun(seconds: float = 1):
    time.sleep(seconds)
    st.rerun()
