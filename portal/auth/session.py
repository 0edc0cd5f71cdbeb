# Explicit session context handed to services and views
import time
from dataclasses import dataclass, field
from typing import Optional

from portal.domains import DOMAINS, DomainDescriptor
from portal.errors import NotAuthenticatedError, PermissionDeniedError
from portal.models.profile import ADMIN_ROLE, UserProfile


@dataclass
class SessionContext:
    """The signed-in user: identity from the auth provider plus the stored profile."""
    uid: str
    email: str
    id_token: str = ""
    refresh_token: str = ""
    profile: UserProfile = field(default_factory=UserProfile)
    last_activity: float = field(default_factory=time.time)

    @property
    def role(self) -> str:
        return self.profile.tipo

    @property
    def is_admin(self) -> bool:
        return self.profile.tipo == ADMIN_ROLE

    @property
    def display_name(self) -> str:
        return self.profile.name or self.email

    def can_triage(self, domain: DomainDescriptor) -> bool:
        return self.is_admin or (domain.staff_role is not None and self.role == domain.staff_role)

    def triage_domains(self):
        return [domain for domain in DOMAINS.values() if self.can_triage(domain)]


def require_user(ctx: Optional[SessionContext]) -> SessionContext:
    if ctx is None or not ctx.uid:
        raise NotAuthenticatedError("Você precisa estar logado para continuar.")
    return ctx


def require_triage(ctx: Optional[SessionContext], domain: DomainDescriptor) -> SessionContext:
    ctx = require_user(ctx)
    if not ctx.can_triage(domain):
        raise PermissionDeniedError(f"Acesso restrito à equipe de {domain.title}.")
    return ctx


def require_admin(ctx: Optional[SessionContext]) -> SessionContext:
    ctx = require_user(ctx)
    if not ctx.is_admin:
        raise PermissionDeniedError("Acesso restrito a administradores.")
    return ctx
