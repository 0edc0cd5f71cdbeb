# Sign-up, sign-in and password reset against the Firebase Identity Toolkit REST API
import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from portal.auth.session import SessionContext
from portal.errors import AuthError
from portal.models.profile import DEFAULT_ROLE, USERS_COLLECTION, UserProfile
from portal.services.firebase_service import FirebaseService

logger = logging.getLogger(__name__)

IDENTITY_URL = "https://identitytoolkit.googleapis.com/v1/accounts:{endpoint}"

INVALID_CREDENTIALS = "Credenciais inválidas. Verifique seu e-mail e senha."
GENERIC_AUTH_ERROR = "Ocorreu um erro ao tentar autenticar. Tente novamente."

AUTH_ERRORS = {
    "EMAIL_EXISTS": "Este e-mail já está em uso.",
    "INVALID_PASSWORD": INVALID_CREDENTIALS,
    "EMAIL_NOT_FOUND": INVALID_CREDENTIALS,
    "INVALID_LOGIN_CREDENTIALS": INVALID_CREDENTIALS,
    "INVALID_EMAIL": "O formato do e-mail é inválido.",
    "MISSING_EMAIL": "O formato do e-mail é inválido.",
    "WEAK_PASSWORD": "A senha deve ter no mínimo 6 caracteres.",
    "MISSING_PASSWORD": "A senha deve ter no mínimo 6 caracteres.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Acesso temporariamente bloqueado. Tente novamente mais tarde.",
    "USER_DISABLED": "Esta conta foi desativada.",
}


def auth_error(code: str) -> AuthError:
    # Provider messages look like "WEAK_PASSWORD : Password should be at least 6 characters"
    code = (code or "").split(" : ")[0].strip()
    return AuthError(code, AUTH_ERRORS.get(code, GENERIC_AUTH_ERROR))


class AuthService:
    """Identity of portal users. Profiles live in Firestore under ``users/{uid}``."""
    SESSION_TIMEOUT_MINUTES = 30

    def __init__(self, firebase: FirebaseService, api_key: str, http: Optional[requests.Session] = None,
                 timeout_minutes: int = SESSION_TIMEOUT_MINUTES, clock: Callable[[], float] = time.time):
        self.db = firebase
        self.api_key = api_key
        self.http = http or requests.Session()
        self.timeout_minutes = timeout_minutes
        self.clock = clock

    def _call(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.http.post(IDENTITY_URL.format(endpoint=endpoint), params={"key": self.api_key},
                                      json=payload, timeout=10)
        except requests.RequestException as e:
            logger.error(f"Erro de comunicação com o serviço de autenticação: {e}", exc_info=True)
            raise AuthError("NETWORK_ERROR", GENERIC_AUTH_ERROR) from e
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not response.ok:
            code = (data.get("error") or {}).get("message", "")
            logger.warning(f"Autenticação recusada em '{endpoint}': {code}")
            raise auth_error(code)
        return data

    def _session(self, data: Dict[str, Any], profile: UserProfile) -> SessionContext:
        return SessionContext(uid=data["localId"], email=data.get("email", profile.email or ""),
                              id_token=data.get("idToken", ""), refresh_token=data.get("refreshToken", ""),
                              profile=profile, last_activity=self.clock())

    def sign_up(self, name: str, email: str, password: str, confirm_password: str) -> SessionContext:
        """Creates the account and its ``Cidadão`` profile, and signs the user in."""
        if password != confirm_password:
            raise AuthError("PASSWORD_MISMATCH", "As senhas não coincidem.")
        email = email.strip()
        data = self._call("signUp", {"email": email, "password": password, "returnSecureToken": True})
        profile = UserProfile(uid=data["localId"], name=name.strip() or None, email=email, tipo=DEFAULT_ROLE)
        self.db.set_doc(USERS_COLLECTION, profile.uid, profile.to_record())
        logger.info(f"Usuário {profile.uid} registrado.")
        return self._session(data, profile)

    def sign_in(self, email: str, password: str) -> SessionContext:
        email = email.strip()
        data = self._call("signInWithPassword", {"email": email, "password": password, "returnSecureToken": True})
        profile = self.load_profile(data["localId"], data.get("email", email))
        logger.info(f"Usuário {data['localId']} autenticado.")
        return self._session(data, profile)

    def send_password_reset(self, email: str) -> None:
        self._call("sendOobCode", {"requestType": "PASSWORD_RESET", "email": email.strip()})
        logger.info("E-mail de redefinição de senha solicitado.")

    def sign_out(self, ctx: Optional[SessionContext]) -> None:
        # Tokens are not revoked; the session simply stops being used.
        if ctx is not None:
            logger.info(f"Usuário {ctx.uid} saiu.")

    def load_profile(self, uid: str, email: str = "") -> UserProfile:
        """Stored profile of the user, or an empty ``Cidadão`` profile when none exists."""
        doc = self.db.get_doc(USERS_COLLECTION, uid)
        if doc is None:
            logger.warning(f"Perfil do usuário {uid} não encontrado.")
            return UserProfile(uid=uid, email=email or None)
        return UserProfile.from_doc(doc)

    def refresh_profile(self, ctx: SessionContext) -> SessionContext:
        """Re-reads the stored profile, picking up role changes made by an admin."""
        ctx.profile = self.load_profile(ctx.uid, ctx.email)
        return ctx

    def is_session_expired(self, ctx: SessionContext) -> bool:
        return self.clock() - ctx.last_activity > self.timeout_minutes * 60

    def touch(self, ctx: SessionContext) -> None:
        ctx.last_activity = self.clock()
