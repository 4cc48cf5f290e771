"""Storage for the parsed resume profile of each user."""

from __future__ import annotations

import asyncio
import copy
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .errors import SavingFailed

logger = logging.getLogger(__name__)


class UserStore(ABC):
    @abstractmethod
    async def put_resume_profile(self, user_id: str, profile: Dict[str, Any]) -> None:
        """Overwrite the stored profile for ``user_id``."""

    @abstractmethod
    async def get_resume_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Stored profile or ``None``."""


def _stamp(profile: Dict[str, Any]) -> Dict[str, Any]:
    now = datetime.now(timezone.utc).isoformat()
    return {**profile, "parsedAt": now, "updatedAt": now}


class InMemoryUserStore(UserStore):
    """Dev-mode store keyed by user id; lost on restart."""

    def __init__(self):
        self._lock = threading.Lock()
        self._profiles: Dict[str, Dict[str, Any]] = {}

    async def put_resume_profile(self, user_id: str, profile: Dict[str, Any]) -> None:
        with self._lock:
            self._profiles[user_id] = _stamp(copy.deepcopy(profile))
        logger.info(f"Resume profile stored in memory for user_id={user_id}")

    async def get_resume_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            profile = self._profiles.get(user_id)
            return copy.deepcopy(profile) if profile is not None else None


class SqlUserStore(UserStore):
    """Flask-SQLAlchemy backed store.

    Calls run in a worker thread inside an application context, so it can be
    used from the background event loop that serves the API.
    """

    def __init__(self, app):
        self.app = app

    async def put_resume_profile(self, user_id: str, profile: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._put, user_id, profile)

    async def get_resume_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._get, user_id)

    def _put(self, user_id: str, profile: Dict[str, Any]) -> None:
        from outreach_agent.extensions import db
        from outreach_agent.models import UserResume

        with self.app.app_context():
            try:
                record = db.session.get(UserResume, user_id)
                stamped = _stamp(profile)
                if record is None:
                    record = UserResume(user_id=user_id)
                    db.session.add(record)
                record.doc_id = profile.get("docId")
                record.profile_json = stamped
                record.updated_at = datetime.now(timezone.utc)
                db.session.commit()
            except Exception as exc:
                db.session.rollback()
                logger.exception("Failed to save resume profile to DB")
                raise SavingFailed(f"Failed to save resume: {exc}") from exc

    def _get(self, user_id: str) -> Optional[Dict[str, Any]]:
        from outreach_agent.extensions import db
        from outreach_agent.models import UserResume

        with self.app.app_context():
            record = db.session.get(UserResume, user_id)
            return dict(record.profile_json) if record is not None else None
