"""FastAPI main application for the DING Online sync relay"""

import logging

from . import config
from .ws.server import create_app

logging.basicConfig(level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)


def build_sender():
    if not config.PUSH_ENABLED:
        logger.info("push notifications disabled")
        return None
    from .notify.fcm import FcmPushSender
    return FcmPushSender()


app = create_app(sender=build_sender())

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.HOST, port=config.PORT)
