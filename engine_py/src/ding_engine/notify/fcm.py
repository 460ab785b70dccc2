"""
Firebase Cloud Messaging sender.

Requires the ``push`` extra (firebase-admin).
"""

import asyncio
import logging
from typing import Dict, List, Optional

import firebase_admin
from firebase_admin import credentials, messaging

from .. import config
from .push import MulticastResult, SendResponse

logger = logging.getLogger(__name__)


def _error_code(exc: Optional[Exception]) -> Optional[str]:
    if exc is None:
        return None
    code = getattr(exc, "code", None)
    return str(code) if code else type(exc).__name__


class FcmPushSender:
    """Sends data-only multicast messages through firebase-admin."""

    def __init__(self, app: Optional[firebase_admin.App] = None,
                 credentials_path: Optional[str] = config.GOOGLE_APPLICATION_CREDENTIALS):
        if app is None:
            try:
                app = firebase_admin.get_app()
            except ValueError:
                cred = credentials.Certificate(credentials_path) if credentials_path else None
                app = firebase_admin.initialize_app(cred)
                logger.info("initialized firebase app")
        self.app = app

    async def send_multicast(self, tokens: List[str], data: Dict[str, str]) -> MulticastResult:
        message = messaging.MulticastMessage(data=data, tokens=tokens)
        batch = await asyncio.to_thread(messaging.send_each_for_multicast, message, app=self.app)
        responses = [
            SendResponse(success=r.success, error_code=_error_code(r.exception), message_id=r.message_id)
            for r in batch.responses
        ]
        logger.debug("fcm multicast: %d ok, %d failed", batch.success_count, batch.failure_count)
        return MulticastResult(responses=responses)
