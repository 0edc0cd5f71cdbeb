# Configuration loaded from Streamlit secrets (secrets.toml)
import os
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field

from portal.errors import PortalError

DEFAULT_OPEN_DATA_URL = "https://www.cmpacatuba.ce.gov.br"

ENV_OVERRIDES = {
    "PORTAL_FIREBASE_WEB_API_KEY": "firebase_web_api_key",
    "PORTAL_OPEN_DATA_URL": "open_data_base_url",
}


class Settings(BaseModel):
    """Runtime settings for the portal."""
    firebase_credentials: Dict[str, Any]
    firebase_web_api_key: str = ""
    open_data_base_url: str = DEFAULT_OPEN_DATA_URL
    session_timeout_minutes: int = Field(30, gt=0)
    max_attachment_mb: float = Field(0.5, gt=0)
    max_admin_attachment_mb: float = Field(0.7, gt=0)
    live_refresh_seconds: int = Field(5, gt=0)

    @property
    def max_attachment_bytes(self) -> int:
        return int(self.max_attachment_mb * 1024 * 1024)

    @property
    def max_admin_attachment_bytes(self) -> int:
        return int(self.max_admin_attachment_mb * 1024 * 1024)


def load_settings(secrets: Optional[Mapping[str, Any]] = None,
                  environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Builds the settings from a secrets mapping.

    Args:
        secrets: Defaults to ``st.secrets``.
        environ: Defaults to ``os.environ``. Variables listed in
            ``ENV_OVERRIDES`` take precedence over the secrets file.
    """
    if secrets is None:
        import streamlit as st
        secrets = st.secrets
    if environ is None:
        environ = os.environ

    if "firebase_credentials" not in secrets:
        raise PortalError("Credenciais do Firebase não encontradas! Verifique seu arquivo secrets.toml.")

    values = {key: secrets[key] for key in Settings.model_fields if key in secrets}
    values["firebase_credentials"] = dict(secrets["firebase_credentials"])
    for env_name, key in ENV_OVERRIDES.items():
        if environ.get(env_name):
            values[key] = environ[env_name]
    return Settings(**values)
