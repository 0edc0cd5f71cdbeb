# Intake and triage of citizen submissions, shared by every service domain
import logging
import secrets
import string
from collections import Counter
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel

from portal.auth.session import SessionContext, require_triage, require_user
from portal.domains import ALL_TAB, UNCLASSIFIED, VEREADORES, DomainDescriptor, get_domain
from portal.errors import AttachmentError, PermissionDeniedError, ProfileNotFoundError, StoreError
from portal.models.profile import NOT_INFORMED, USERS_COLLECTION, UserProfile
from portal.models.submission import (
    ADMIN_SENDER,
    ANONYMOUS_USER_ID,
    IDENTIFIED,
    Attachment,
    Message,
    Notification,
    Submission,
)
from portal.services.firebase_service import MAX_DOCUMENT_BYTES, FirebaseService, document_size, push_key_time
from portal.services.live_query import LiveQuery
from portal.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

MB = 1024 * 1024
PROTOCOL_LENGTH = 10
CITIZEN_ATTACHMENT_TYPES = ("image/png", "image/jpeg", "application/pdf")
# Room left in a new record for the form, the profile snapshot and the first messages.
FORM_RESERVE_BYTES = 50_000

DomainRef = Union[str, DomainDescriptor]


def _domain(domain: DomainRef) -> DomainDescriptor:
    return domain if isinstance(domain, DomainDescriptor) else get_domain(domain)


def generate_protocol() -> str:
    return "".join(secrets.choice(string.digits) for _ in range(PROTOCOL_LENGTH))


def status_histogram(domain: DomainRef, records: Iterable[Submission]) -> Dict[str, int]:
    """
    Counts records per status, in the domain's category order.

    Missing or unknown statuses fall under ``UNCLASSIFIED``; every category is
    present, with zero when nothing matches.
    """
    domain = _domain(domain)
    counts = Counter(
        record.status if record.status in domain.statuses else UNCLASSIFIED for record in records
    )
    return {category: counts.get(category, 0) for category in domain.chart_categories}


def filter_by_status(records: Sequence[Submission], tab: str) -> List[Submission]:
    if tab == ALL_TAB:
        return list(records)
    return [record for record in records if record.status == tab]


class SubmissionService:
    """
    Generic intake, listing and triage for the submissions of every domain.
    """

    def __init__(self, firebase: FirebaseService, notifications: NotificationService,
                 clock: Callable[[], datetime] = datetime.now,
                 max_attachment_bytes: int = MB // 2,
                 max_admin_attachment_bytes: int = int(0.7 * MB)):
        self.firebase = firebase
        self.notifications = notifications
        self.clock = clock
        self.max_attachment_bytes = max_attachment_bytes
        self.max_admin_attachment_bytes = max_admin_attachment_bytes

    # --- Intake ---

    def validate_form(self, domain: DomainRef, form_data: Union[BaseModel, Mapping[str, Any]]) -> BaseModel:
        """Raises pydantic's ValidationError when required fields are missing or invalid."""
        domain = _domain(domain)
        if isinstance(form_data, domain.form_model):
            return form_data
        if isinstance(form_data, BaseModel):
            form_data = form_data.model_dump()
        return domain.form_model.model_validate(dict(form_data))

    def prepare_attachments(self, files: Iterable[Tuple[str, str, bytes]],
                            sender: Optional[str] = None) -> Tuple[List[Attachment], List[str]]:
        """
        Encodes citizen uploads given as ``(name, content_type, data)``.

        Returns the accepted attachments and one message per rejected file.
        Files are stored inside the record, so once their encoded total would
        outgrow the record the remaining ones are rejected too.
        """
        accepted, rejected = [], []
        limit_mb = self.max_attachment_bytes / MB
        budget = MAX_DOCUMENT_BYTES - FORM_RESERVE_BYTES
        for name, content_type, data in files:
            if content_type not in CITIZEN_ATTACHMENT_TYPES:
                rejected.append(f"'{name}': tipo de arquivo não permitido (use PNG, JPG ou PDF).")
                continue
            if len(data) > self.max_attachment_bytes:
                rejected.append(f"'{name}': excede o limite de {limit_mb:g}MB.")
                continue
            attachment = Attachment.from_bytes(name, content_type, data, sender=sender, timestamp=self.clock())
            size = document_size(attachment.model_dump(exclude_none=True))
            if size > budget:
                rejected.append(f"'{name}': os anexos somados excedem o tamanho máximo da solicitação "
                                f"({MAX_DOCUMENT_BYTES / MB:.2f}MB após codificação).")
                continue
            budget -= size
            accepted.append(attachment)
        return accepted, rejected

    def _profile_snapshot(self, ctx: SessionContext, domain: DomainDescriptor) -> Dict[str, Any]:
        doc = self.firebase.get_doc(USERS_COLLECTION, ctx.uid)
        if doc is None:
            if domain.requires_profile:
                raise ProfileNotFoundError("Seu perfil de usuário não foi encontrado. "
                                           "Por favor, complete seu cadastro.")
            profile = ctx.profile
        else:
            profile = UserProfile.from_doc(doc)
        snapshot = profile.snapshot(domain.snapshot_fields)
        snapshot["id"] = ctx.uid
        snapshot["email"] = profile.email or ctx.email or NOT_INFORMED
        return snapshot

    def submit(self, ctx: Optional[SessionContext], domain: DomainRef,
               form_data: Union[BaseModel, Mapping[str, Any]], anonymous: bool = False,
               attachments: Sequence[Attachment] = ()) -> Submission:
        """
        Validates and stores a new submission with the domain's initial status.

        Every call creates a new record; nothing is deduplicated.
        """
        domain = _domain(domain)
        ctx = require_user(ctx)
        form = self.validate_form(domain, form_data)
        if anonymous and not domain.allows_anonymous:
            raise ValueError(f"{domain.title} não aceita solicitações anônimas.")

        submission = Submission(
            user_id=ANONYMOUS_USER_ID if anonymous else ctx.uid,
            identificacao=ANONYMOUS_USER_ID if anonymous else IDENTIFIED,
            dados_solicitacao=form.model_dump(mode="json", exclude_none=True),
            status=domain.initial_status,
            created_at=self.clock(),
            anexos=list(attachments),
        )
        if not anonymous:
            submission.dados_usuario = self._profile_snapshot(ctx, domain)
        if domain.issues_protocol:
            submission.protocolo = generate_protocol()

        record = submission.to_record()
        if document_size(record) > MAX_DOCUMENT_BYTES:
            raise AttachmentError("A solicitação com os anexos excede o tamanho máximo permitido. "
                                  "Envie arquivos menores.")
        submission.id = self.firebase.add_doc(domain.collection, record)
        logger.info(f"Nova solicitação {submission.id} registrada em '{domain.collection}'.")
        return submission

    # --- Reading ---

    def get(self, domain: DomainRef, submission_id: str, ctx: Optional[SessionContext] = None) -> Submission:
        """
        Reads one submission. With a session, only staff that may see the
        record get it; anyone else gets ``PermissionDeniedError``.
        """
        domain = _domain(domain)
        if ctx is not None:
            ctx = require_triage(ctx, domain)
        doc = self.firebase.get_doc(domain.collection, submission_id)
        if doc is None:
            raise StoreError("Solicitação não encontrada.")
        submission = Submission.from_doc(doc)
        if ctx is not None:
            self._check_visible(ctx, domain, submission)
        return submission

    def _visible_to(self, ctx: SessionContext, domain: DomainDescriptor) -> Optional[Callable[[Submission], bool]]:
        # Council members only see appointments addressed to them.
        if domain is VEREADORES and not ctx.is_admin:
            name = ctx.profile.name
            return lambda record: record.dados_solicitacao.get("vereador_nome") == name
        return None

    def _check_visible(self, ctx: SessionContext, domain: DomainDescriptor, submission: Submission) -> None:
        keep = self._visible_to(ctx, domain)
        if keep is not None and not keep(submission):
            raise PermissionDeniedError("Esta solicitação não está sob a sua responsabilidade.")

    def subscribe_user(self, ctx: Optional[SessionContext], domain: DomainRef,
                       on_change: Optional[Callable[[List[Submission]], None]] = None) -> LiveQuery[Submission]:
        """Live list of the user's own submissions in a domain."""
        domain = _domain(domain)
        ctx = require_user(ctx)
        return LiveQuery(self.firebase, domain.collection, [("user_id", "==", ctx.uid)],
                         Submission.from_doc, on_change=on_change)

    def subscribe_all(self, ctx: Optional[SessionContext], domain: DomainRef,
                      on_change: Optional[Callable[[List[Submission]], None]] = None) -> LiveQuery[Submission]:
        """Live list of every submission of a domain, for its staff."""
        domain = _domain(domain)
        ctx = require_triage(ctx, domain)
        return LiveQuery(self.firebase, domain.collection, None, Submission.from_doc,
                         on_change=on_change, keep=self._visible_to(ctx, domain))

    # --- Triage ---

    def change_status(self, ctx: Optional[SessionContext], domain: DomainRef, submission_id: str,
                      new_status: str) -> Optional[Notification]:
        """
        Overwrites the status and notifies the submitter.

        Any status of the domain can follow any other. Returns the
        notification, or None when there was nobody to notify.
        """
        domain = _domain(domain)
        require_triage(ctx, domain)
        if new_status not in domain.statuses:
            raise ValueError(f"Status inválido para {domain.title}: '{new_status}'")
        submission = self.get(domain, submission_id, ctx)
        self.firebase.update_doc(domain.collection, submission_id, {"status": new_status})
        submission.status = new_status
        logger.info(f"Status da solicitação {submission_id} alterado para '{new_status}'.")
        return self._notify(domain, submission, status=new_status)

    def append_message(self, ctx: Optional[SessionContext], domain: DomainRef, submission_id: str,
                       text: str, notify: bool = True) -> Message:
        domain = _domain(domain)
        require_triage(ctx, domain)
        text = (text or "").strip()
        if not text:
            raise ValueError("A mensagem não pode estar vazia.")
        submission = self.get(domain, submission_id, ctx)
        key, value = self.firebase.push_child(
            domain.collection, submission_id, "messages",
            lambda key: Message(sender=ADMIN_SENDER, text=text, timestamp=push_key_time(key)).model_dump(),
        )
        logger.info(f"Mensagem {key} adicionada à solicitação {submission_id}.")
        if notify:
            self._notify(domain, submission)
        return Message.model_validate(value)

    def attach_file(self, ctx: Optional[SessionContext], domain: DomainRef, submission_id: str,
                    name: str, content_type: str, data: bytes) -> Attachment:
        """
        Appends a staff attachment to the submission.

        The list is read, extended and written back without any guard, so two
        uploads racing on the same record can lose one of them.
        """
        domain = _domain(domain)
        require_triage(ctx, domain)
        if len(data) > self.max_admin_attachment_bytes:
            raise AttachmentError(f"O arquivo excede o limite de {self.max_admin_attachment_bytes / MB:g}MB.")
        attachment = Attachment.from_bytes(name, content_type, data, sender=ADMIN_SENDER, timestamp=self.clock())
        current = self.firebase.get_doc(domain.collection, submission_id)
        if current is None:
            raise StoreError("Solicitação não encontrada.")
        self._check_visible(ctx, domain, Submission.from_doc(current))
        anexos = list(current.get("anexos") or [])
        anexos.append(attachment.model_dump(exclude_none=True))
        free = MAX_DOCUMENT_BYTES - document_size(current)
        if document_size(current | {"anexos": anexos}) > MAX_DOCUMENT_BYTES:
            raise AttachmentError(f"Não há espaço na solicitação para este arquivo: restam cerca de "
                                  f"{max(free, 0) * 3 // 4 // 1024}KB para anexos.")
        self.firebase.update_doc(domain.collection, submission_id, {"anexos": anexos})
        logger.info(f"Anexo '{name}' adicionado à solicitação {submission_id}.")
        return attachment

    def resolve_submitter_profile(self, submission: Submission) -> Dict[str, Any]:
        """Current profile of the submitter, or the snapshot taken at submission time."""
        fallback = dict(submission.dados_usuario or {})
        if submission.is_anonymous:
            return fallback
        try:
            doc = self.firebase.get_doc(USERS_COLLECTION, submission.user_id)
        except StoreError:
            logger.warning(f"Perfil de {submission.user_id} indisponível; usando os dados da solicitação.")
            return fallback
        if doc is None:
            return fallback
        profile = UserProfile.from_doc(doc)
        return profile.model_dump(exclude={"avatar", "created_at"}, exclude_none=True) | {"id": submission.user_id}

    def _notify(self, domain: DomainDescriptor, submission: Submission,
                status: Optional[str] = None) -> Optional[Notification]:
        # The change is already stored; a failed notification is not rolled back.
        try:
            return self.notifications.notify_submitter(
                domain, submission, status=status, profile=self.resolve_submitter_profile(submission)
            )
        except StoreError as e:
            logger.error(f"Falha ao notificar o usuário {submission.user_id}: {e}", exc_info=True)
            return None
