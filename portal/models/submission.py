# Pydantic models for submissions, notifications and panic contacts
import base64
import binascii
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, constr

ANONYMOUS_USER_ID = "anonimo"
IDENTIFIED = "identificado"
ADMIN_SENDER = "admin"


class Message(BaseModel):
    sender: str
    text: str
    timestamp: datetime


class Attachment(BaseModel):
    """File stored inline in the record as a base64 data URL."""
    name: str
    type: str
    data: str
    sender: Optional[str] = None
    timestamp: Optional[datetime] = None

    @classmethod
    def from_bytes(cls, name: str, content_type: str, payload: bytes,
                   sender: Optional[str] = None, timestamp: Optional[datetime] = None) -> "Attachment":
        b64_data = base64.b64encode(payload).decode("utf-8")
        return cls(name=name, type=content_type, data=f"data:{content_type};base64,{b64_data}",
                   sender=sender, timestamp=timestamp)

    def decode(self) -> bytes:
        _, _, b64_data = self.data.partition(";base64,")
        try:
            return base64.b64decode(b64_data or self.data)
        except (ValueError, binascii.Error):
            return b""


class Submission(BaseModel):
    """One citizen request in a service domain."""
    id: Optional[str] = None
    user_id: str
    identificacao: str = IDENTIFIED
    dados_solicitacao: Dict[str, Any] = Field(default_factory=dict)
    dados_usuario: Optional[Dict[str, Any]] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = None
    messages: Dict[str, Message] = Field(default_factory=dict)
    anexos: List[Attachment] = Field(default_factory=list)
    protocolo: Optional[str] = None

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Submission":
        data = dict(doc)
        data.setdefault("user_id", ANONYMOUS_USER_ID)
        data["messages"] = data.get("messages") or {}
        data["anexos"] = data.get("anexos") or []
        return cls.model_validate(data)

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"id"}, exclude_none=True)

    @property
    def is_anonymous(self) -> bool:
        return self.user_id == ANONYMOUS_USER_ID

    @property
    def subject(self) -> str:
        data = self.dados_solicitacao
        return data.get("assunto") or data.get("assunto_denuncia") or "Não especificado"

    def ordered_messages(self) -> List[Message]:
        return [self.messages[key] for key in sorted(self.messages)]


class Notification(BaseModel):
    id: Optional[str] = None
    target_user_id: str
    titulo: str
    descricao: str
    submission_id: str
    domain: str
    status: Optional[str] = None
    user_email: Optional[str] = None
    is_read: bool = False
    timestamp: datetime = Field(default_factory=datetime.now)

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"id"}, exclude_none=True)


class PanicContact(BaseModel):
    telefone: constr(strip_whitespace=True, min_length=1) = Field(title="Telefone de confiança")
    email: Optional[EmailStr] = Field(None, title="E-mail de confiança")
