"""
Notification Service.

Records who should be told about an event. Delivery happens elsewhere;
this service only appends ``notification_log`` rows (flush, no commit).
"""

import logging

from ceodesk.models import db
from ceodesk.models.notification import NotificationLog

logger = logging.getLogger(__name__)


class NotificationService:
    """Stateless service class for notification log operations."""

    @staticmethod
    def record(*, org_id, user_ids, notification_type, entity_type, entity_id, payload=None):
        """
        Append one log row per distinct recipient.

        Returns:
            List of created NotificationLog instances.
        """
        rows = []
        for user_id in dict.fromkeys(user_ids):
            row = NotificationLog(
                org_id=org_id,
                user_id=user_id,
                notification_type=notification_type,
                entity_type=entity_type,
                entity_id=str(entity_id),
                payload=payload or {},
            )
            db.session.add(row)
            rows.append(row)
        db.session.flush()
        logger.debug("Notification log: %s x%d for %s/%s",
                     notification_type, len(rows), entity_type, entity_id)
        return rows

