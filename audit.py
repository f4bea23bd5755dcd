import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

import models
from models import AppointmentStatus

logger = logging.getLogger(__name__)


class AuditRecorder:
    """Append-only log of appointment transitions.

    Writes go through a SAVEPOINT so a failed insert rolls back only the
    audit row, never the caller's transaction.
    """

    def record(self, db: Session, appointment_id: int, action: str, old_status: Optional[AppointmentStatus],
               new_status: AppointmentStatus, reason: Optional[str] = None, changed_by: str = "system",
               timestamp: Optional[datetime] = None) -> None:
        try:
            with db.begin_nested():
                entry = models.AppointmentAuditLog(
                    appointment_id=appointment_id,
                    action=action,
                    old_status=old_status,
                    new_status=new_status,
                    reason=reason,
                    changed_by=changed_by,
                )
                if timestamp is not None:
                    entry.timestamp = timestamp
                db.add(entry)
                db.flush()
        except Exception as e:
            logger.warning(f"Failed to write audit log for appointment {appointment_id} ({action}): {e}")
