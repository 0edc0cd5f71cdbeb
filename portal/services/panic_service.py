# Panic button of the women's advocacy service
import logging
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import quote

from portal.auth.session import SessionContext, require_user
from portal.errors import GeolocationError, PanicContactMissingError
from portal.models.submission import PanicContact
from portal.services.firebase_service import FirebaseService

logger = logging.getLogger(__name__)

PANIC_COLLECTION = "procuradoria_mulher_btn_panico"
MAPS_URL = "https://www.google.com/maps?q={lat},{lng}"
ALERT_TEXT = "SOCORRO! Preciso de ajuda urgente. Minha localização aproximada é: {maps_url}"
# Characters encodeURIComponent leaves unescaped
URI_SAFE = "-_.!~*'()"


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class PanicAlert:
    phone: str
    maps_url: str
    message: str
    sms_uri: str


def compose_alert(phone: str, position: Position) -> PanicAlert:
    """Builds the SMS the device will open, pointing at the given position."""
    maps_url = MAPS_URL.format(lat=position.latitude, lng=position.longitude)
    message = ALERT_TEXT.format(maps_url=maps_url)
    sms_uri = f"sms:{phone}?body={quote(message, safe=URI_SAFE)}"
    return PanicAlert(phone=phone, maps_url=maps_url, message=message, sms_uri=sms_uri)


class PanicService:
    def __init__(self, firebase: FirebaseService):
        self.firebase = firebase

    def get_contact(self, ctx: Optional[SessionContext]) -> Optional[PanicContact]:
        ctx = require_user(ctx)
        doc = self.firebase.get_doc(PANIC_COLLECTION, ctx.uid)
        if not doc or not (doc.get("telefone") or "").strip():
            return None
        return PanicContact(telefone=doc["telefone"], email=doc.get("email") or None)

    def save_contact(self, ctx: Optional[SessionContext], telefone: str, email: Optional[str] = None) -> PanicContact:
        """Raises pydantic's ValidationError when the phone is blank."""
        ctx = require_user(ctx)
        contact = PanicContact(telefone=telefone, email=(email or "").strip() or None)
        self.firebase.set_doc(PANIC_COLLECTION, ctx.uid, contact.model_dump(exclude_none=True))
        logger.info(f"Contato de emergência atualizado para o usuário {ctx.uid}.")
        return contact

    def require_contact(self, ctx: Optional[SessionContext]) -> PanicContact:
        contact = self.get_contact(ctx)
        if contact is None:
            raise PanicContactMissingError("Você precisa configurar um telefone de confiança primeiro. "
                                           "Vá para 'Configurar Botão de Pânico'.")
        return contact

    def trigger(self, ctx: Optional[SessionContext], locate: Callable[[], Position]) -> PanicAlert:
        """
        Locates the device once and composes the alert for the trusted contact.

        ``locate`` is not called when no contact is configured. It raises
        GeolocationError when the position is unavailable; nothing is retried.
        """
        contact = self.require_contact(ctx)
        try:
            position = locate()
        except GeolocationError:
            logger.warning(f"Localização indisponível para o alerta do usuário {ctx.uid}.")
            raise
        alert = compose_alert(contact.telefone, position)
        logger.info(f"Alerta de pânico composto para o usuário {ctx.uid}.")
        return alert
