# Own-profile editing and admin user management
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from portal.auth.session import SessionContext, require_admin, require_user
from portal.errors import AttachmentError, StoreError
from portal.models.profile import ROLES, USERS_COLLECTION, UserProfile
from portal.models.submission import Attachment
from portal.services.firebase_service import MAX_DOCUMENT_BYTES, FirebaseService, document_size
from portal.services.live_query import LiveQuery

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "phone", "cpf", "sexo", "estado_civil", "cep", "address", "numero",
                   "complemento", "neighborhood", "city", "state")
AVATAR_TYPES = ("image/png", "image/jpeg")


def search_users(users: Sequence[UserProfile], term: str) -> List[UserProfile]:
    """Case-insensitive match on name or e-mail."""
    term = (term or "").strip().lower()
    if not term:
        return list(users)
    return [user for user in users
            if term in (user.name or "").lower() or term in (user.email or "").lower()]


def _clean(changes: Mapping[str, Any], allowed: Sequence[str]) -> Dict[str, Any]:
    cleaned = {}
    for key, value in changes.items():
        if key not in allowed:
            continue
        if isinstance(value, str):
            value = value.strip()
        cleaned[key] = value or None
    return cleaned


class ProfileService:
    def __init__(self, firebase: FirebaseService, max_avatar_bytes: int = 512 * 1024):
        self.firebase = firebase
        self.max_avatar_bytes = max_avatar_bytes

    def get(self, uid: str) -> Optional[UserProfile]:
        doc = self.firebase.get_doc(USERS_COLLECTION, uid)
        return UserProfile.from_doc(doc) if doc else None

    def _save(self, uid: str, current: UserProfile, changes: Dict[str, Any]) -> UserProfile:
        updated = UserProfile.model_validate(current.model_dump() | changes | {"uid": uid})
        # None means "cleared", so those keys are written explicitly.
        record = updated.to_record() | {key: None for key, value in changes.items() if value is None}
        self.firebase.set_doc(USERS_COLLECTION, uid, record, merge=True)
        return updated

    def update_own(self, ctx: Optional[SessionContext], changes: Mapping[str, Any]) -> UserProfile:
        """Saves the user's own contact and address fields. Role and e-mail are left untouched."""
        ctx = require_user(ctx)
        current = self.get(ctx.uid) or ctx.profile
        ctx.profile = self._save(ctx.uid, current, _clean(changes, EDITABLE_FIELDS))
        logger.info(f"Perfil do usuário {ctx.uid} atualizado.")
        return ctx.profile

    def set_avatar(self, ctx: Optional[SessionContext], name: str, content_type: str, data: bytes) -> UserProfile:
        ctx = require_user(ctx)
        if content_type not in AVATAR_TYPES:
            raise AttachmentError("Use uma imagem PNG ou JPG.")
        if len(data) > self.max_avatar_bytes:
            raise AttachmentError(f"A imagem excede o limite de {self.max_avatar_bytes / (1024 * 1024):g}MB.")
        avatar = Attachment.from_bytes(name, content_type, data).data
        stored = self.firebase.get_doc(USERS_COLLECTION, ctx.uid) or {}
        if document_size(stored | {"avatar": avatar}) > MAX_DOCUMENT_BYTES:
            raise AttachmentError("A imagem é grande demais para o perfil. Escolha uma imagem menor.")
        self.firebase.set_doc(USERS_COLLECTION, ctx.uid, {"avatar": avatar}, merge=True)
        ctx.profile = ctx.profile.model_copy(update={"avatar": avatar})
        return ctx.profile

    def subscribe_users(self, ctx: Optional[SessionContext]) -> LiveQuery[UserProfile]:
        require_admin(ctx)
        return LiveQuery(self.firebase, USERS_COLLECTION, None, UserProfile.from_doc)

    def update_user(self, ctx: Optional[SessionContext], uid: str, changes: Mapping[str, Any]) -> UserProfile:
        """Admin edit of any profile, including its role tag."""
        require_admin(ctx)
        cleaned = _clean(changes, EDITABLE_FIELDS + ("tipo",))
        if "tipo" in cleaned and cleaned["tipo"] not in ROLES:
            raise ValueError(f"Tipo de usuário inválido: '{cleaned['tipo']}'")
        current = self.get(uid)
        if current is None:
            raise StoreError("Usuário não encontrado.")
        updated = self._save(uid, current, cleaned)
        logger.info(f"Usuário {uid} atualizado pelo administrador {ctx.uid}.")
        return updated
