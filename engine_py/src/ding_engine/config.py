"""
Process configuration read from the environment.
"""

import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "info").lower()
RELOAD = os.getenv("RELOAD", "false").lower() == "true"

# Delay before the dispatcher checks whether a notified player acted.
NOTIFY_RECHECK_SECONDS = float(os.getenv("DING_NOTIFY_RECHECK_SECONDS", 15))

# How often an unsynced coordinator tries to reconnect.
RESYNC_INTERVAL_SECONDS = float(os.getenv("DING_RESYNC_INTERVAL_SECONDS", 10))

SETTINGS_DEBOUNCE_SECONDS = float(os.getenv("DING_SETTINGS_DEBOUNCE_SECONDS", 0.2))

APP_TITLE = os.getenv("DING_APP_TITLE", "DING Online")

# Service account for the FCM sender; unset means application default credentials.
GOOGLE_APPLICATION_CREDENTIALS = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")

# Turn on the FCM sender for the relay's turn notifications (needs the push extra).
PUSH_ENABLED = os.getenv("DING_PUSH_ENABLED", "false").lower() == "true"
