# Pydantic models for user profiles
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

USERS_COLLECTION = "users"

ADMIN_ROLE = "Admin"
DEFAULT_ROLE = "Cidadão"
ROLES = ["Admin", "Vereador", "Juridico", "Procuradoria", "Procon", "Ouvidoria", "Balcão", "Cidadão"]

NOT_INFORMED = "Não informado"


class UserProfile(BaseModel):
    """Profile stored under ``users/{uid}``."""
    uid: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    cpf: Optional[str] = None
    sexo: Optional[str] = None
    estado_civil: Optional[str] = None
    cep: Optional[str] = None
    address: Optional[str] = None
    numero: Optional[str] = None
    complemento: Optional[str] = None
    neighborhood: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    tipo: str = DEFAULT_ROLE
    avatar: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "UserProfile":
        data = dict(doc)
        doc_id = data.pop("id", None)
        data.setdefault("uid", doc_id)
        if not data.get("tipo"):
            data["tipo"] = DEFAULT_ROLE
        return cls.model_validate(data)

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"uid"}, exclude_none=True)

    @property
    def display_name(self) -> str:
        return self.name or self.email or "Usuário"

    @property
    def is_admin(self) -> bool:
        return self.tipo == ADMIN_ROLE

    def snapshot(self, fields) -> Dict[str, str]:
        """Copy of the given fields, with missing values as ``NOT_INFORMED``."""
        values = self.model_dump()
        return {field: values.get(field) or NOT_INFORMED for field in fields}
