"""Rate limiting configuration using slowapi.

The module-level Limiter is wired into the app in main.py; routers import
it for per-endpoint limits (device ingest, sync start).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["60/minute"],
)

DEVICE_INGEST_LIMIT = "30/minute"
SYNC_START_LIMIT = "5/minute"
