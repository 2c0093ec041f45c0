import os

DATABASE_URL = os.environ.get("LOCKD_DATABASE_URL", "")

HOST = os.environ.get("LOCKD_HOST", "0.0.0.0")
PORT = int(os.environ.get("LOCKD_PORT", "6001"))
LOG_LEVEL = os.environ.get("LOCKD_LOG_LEVEL", "info")

CLIENT_TIMEOUT_SECONDS = float(os.environ.get("LOCKD_CLIENT_TIMEOUT", "30"))
