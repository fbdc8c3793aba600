"""
Application Configuration
Centralized configuration for Redis, the primary store and the local fallback store
"""
import os
from pathlib import Path
from typing import Optional

import redis.asyncio as redis
from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Redis Configuration (client-side appointment cache)
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")
CACHE_PREFIX = os.getenv("CACHE_PREFIX", "smartbooking")
APPOINTMENT_CACHE_ENABLED = os.getenv("APPOINTMENT_CACHE_ENABLED", "false").lower() == "true"

# Primary store tables
APPOINTMENTS_TABLE = os.getenv("APPOINTMENTS_TABLE", "appointments")
SETTINGS_TABLE = os.getenv("SETTINGS_TABLE", "business_settings")
SUPABASE_SCHEMA = os.getenv("SUPABASE_SCHEMA", "public")

# Local fallback storage (flat JSON file + snapshots)
LOCAL_DATA_DIR = Path(os.getenv("LOCAL_DATA_DIR", Path(__file__).resolve().parent.parent / "data"))

# Unset means snapshots accumulate until pruned externally
_max_snapshots = os.getenv("FALLBACK_MAX_SNAPSHOTS")
FALLBACK_MAX_SNAPSHOTS: Optional[int] = int(_max_snapshots) if _max_snapshots else None

# Primary store connectivity (seconds)
PRIMARY_CONNECT_ATTEMPTS = int(os.getenv("PRIMARY_CONNECT_ATTEMPTS", "5"))
PRIMARY_CONNECT_DELAY = float(os.getenv("PRIMARY_CONNECT_DELAY", "2"))
PRIMARY_PROBE_TIMEOUT = float(os.getenv("PRIMARY_PROBE_TIMEOUT", "3"))
PRIMARY_RECHECK_INTERVAL = float(os.getenv("PRIMARY_RECHECK_INTERVAL", "30"))

# Reconciliation schedule
SYNC_INTERVAL_MINUTES = int(os.getenv("SYNC_INTERVAL_MINUTES", "15"))
SYNC_ON_STARTUP = os.getenv("SYNC_ON_STARTUP", "true").lower() == "true"

# How often past appointments are swept to Completed
COMPLETION_SWEEP_MINUTES = int(os.getenv("COMPLETION_SWEEP_MINUTES", "1"))

# Appointments more than this many seconds in the past are auto-completed
AUTO_COMPLETE_GRACE_SECONDS = int(os.getenv("AUTO_COMPLETE_GRACE_SECONDS", "60"))


def get_redis_client() -> redis.Redis:
    """
    Get configured async Redis client for the appointment cache

    Returns:
        redis.Redis: Configured Redis client instance
    """
    return redis.Redis.from_url(
        REDIS_URL,
        decode_responses=True,  # Automatically decode responses to strings
        socket_connect_timeout=5,  # 5 second connection timeout
        socket_timeout=5,  # 5 second operation timeout
        retry_on_timeout=True,  # Retry operations that timeout
        health_check_interval=30  # Health check every 30 seconds
    )
