"""
Runtime configuration read from environment variables.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from .crypto.hashing import HASHERS

logger = logging.getLogger(__name__)

DATABASE_PATH_ENV = "BALLOTPROOF_DATABASE_PATH"
VERIFICATION_KEY_ENV = "BALLOTPROOF_VERIFICATION_KEY"
VERIFY_WORKERS_ENV = "BALLOTPROOF_VERIFY_WORKERS"
ALLOW_PRESNAPSHOT_ENV = "BALLOTPROOF_ALLOW_PRESNAPSHOT_VOTING"
HASHER_ENV = "BALLOTPROOF_HASHER"

DEFAULT_HASHER = "poseidon"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Settings shared by the services and the web application."""

    database_path: Optional[str] = None
    verification_key_path: Optional[str] = None
    verify_workers: int = 2
    allow_presnapshot_voting: bool = False
    hasher: str = DEFAULT_HASHER

    @classmethod
    def from_env(cls) -> "Settings":
        workers_raw = os.environ.get(VERIFY_WORKERS_ENV, "2")
        try:
            workers = max(1, int(workers_raw))
        except ValueError:
            logger.warning(
                f"Ignoring invalid {VERIFY_WORKERS_ENV}={workers_raw!r}, using 2"
            )
            workers = 2

        hasher = os.environ.get(HASHER_ENV, DEFAULT_HASHER).strip().lower()
        if hasher not in HASHERS:
            logger.warning(
                f"Ignoring unknown {HASHER_ENV}={hasher!r}, using {DEFAULT_HASHER}"
            )
            hasher = DEFAULT_HASHER

        return cls(
            database_path=os.environ.get(DATABASE_PATH_ENV) or None,
            verification_key_path=os.environ.get(VERIFICATION_KEY_ENV) or None,
            verify_workers=workers,
            allow_presnapshot_voting=os.environ.get(ALLOW_PRESNAPSHOT_ENV, "")
            .strip()
            .lower()
            in _TRUE_VALUES,
            hasher=hasher,
        )
