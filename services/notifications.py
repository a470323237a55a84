import json
import logging

from models.notification import Notification

logger = logging.getLogger(__name__)


class Notifier:
    """Records user-facing events as Notification rows.

    Rows are added to the caller's session; they are committed together with
    whatever the caller commits next.
    """

    def __init__(self, session):
        self.session = session

    def emit(self, user_id, type: str, message: str, data=None):
        if user_id is None:
            return None
        row = Notification(
            user_id=user_id,
            type=type,
            message=message[:255],
            data_json=json.dumps(data, default=str) if data else None,
        )
        self.session.add(row)
        logger.debug("notification %s queued for user %s", type, user_id)
        return row
