# User notifications raised by staff actions
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from portal.auth.session import SessionContext, require_user
from portal.domains import DomainDescriptor
from portal.errors import PermissionDeniedError, StoreError
from portal.models.submission import Notification, Submission
from portal.services.firebase_service import FirebaseService

logger = logging.getLogger(__name__)

NOTIFICATIONS_COLLECTION = "notifications"
FOLLOW_UP_HINT = "Abra o Portal de Serviços da Câmara Municipal para acompanhar."


class NotificationService:
    def __init__(self, firebase: FirebaseService, clock: Callable[[], datetime] = datetime.now):
        self.firebase = firebase
        self.clock = clock

    def notify_submitter(self, domain: DomainDescriptor, submission: Submission,
                         status: Optional[str] = None,
                         profile: Optional[Dict[str, Any]] = None) -> Optional[Notification]:
        """
        Enqueues a notification for the owner of a submission.

        Anonymous submissions have nobody to notify; None is returned for them.
        """
        if submission.is_anonymous:
            logger.info(f"Solicitação anônima {submission.id} em '{domain.collection}': sem notificação.")
            return None
        if status:
            descricao = f'O status foi atualizado para "{status}". {FOLLOW_UP_HINT}'
        else:
            descricao = f"Você recebeu uma nova mensagem. {FOLLOW_UP_HINT}"
        email = (profile or submission.dados_usuario or {}).get("email")
        notification = Notification(
            target_user_id=submission.user_id,
            titulo=domain.notification_title,
            descricao=descricao,
            submission_id=submission.id,
            domain=domain.key,
            status=status,
            user_email=email,
            timestamp=self.clock(),
        )
        notification.id = self.firebase.add_doc(NOTIFICATIONS_COLLECTION, notification.to_record())
        logger.info(f"Notificação {notification.id} enviada para o usuário {submission.user_id}.")
        return notification

    def list_for(self, ctx: SessionContext, unread_only: bool = False) -> List[Notification]:
        ctx = require_user(ctx)
        filters = [("target_user_id", "==", ctx.uid)]
        if unread_only:
            filters.append(("is_read", "==", False))
        notifications = [Notification.model_validate(doc) for doc in
                         self.firebase.get_docs(NOTIFICATIONS_COLLECTION, filters)]
        notifications.sort(key=lambda n: n.timestamp, reverse=True)
        return notifications

    def unread_for(self, ctx: SessionContext) -> List[Notification]:
        return self.list_for(ctx, unread_only=True)

    def mark_read(self, ctx: SessionContext, notification_id: str) -> None:
        ctx = require_user(ctx)
        doc = self.firebase.get_doc(NOTIFICATIONS_COLLECTION, notification_id)
        if doc is None:
            raise StoreError("Notificação não encontrada.")
        if doc.get("target_user_id") != ctx.uid:
            raise PermissionDeniedError("Esta notificação pertence a outro usuário.")
        self.firebase.update_doc(NOTIFICATIONS_COLLECTION, notification_id, {"is_read": True})
