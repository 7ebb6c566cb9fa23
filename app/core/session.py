"""
Server-side session storage for in-progress test attempts.

The browser only carries an opaque session id cookie; the payload (logged-in user,
recorded answers, per-question timings, attempt timestamps) lives in a store created
with the application lifespan and kept on ``app.state.session_store``.
"""

import copy
import json
import logging
import secrets
import threading
import time
import uuid
from typing import Any, Dict, List, Optional

from fastapi import Request

from app.core.cache import create_redis_client
from app.core.config import settings

logger = logging.getLogger(__name__)

ATTEMPT_KEYS = ("answers", "question_times", "marked", "test_start_time", "attempt_id")


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


def now_ms() -> int:
    return int(time.time() * 1000)


class SessionStore:
    """Opaque key-value store, one JSON-compatible dict per session id."""

    def load(self, session_id: str) -> Dict[str, Any]:
        raise NotImplementedError

    def save(self, session_id: str, data: Dict[str, Any]) -> None:
        raise NotImplementedError

    def delete(self, session_id: str) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class MemorySessionStore(SessionStore):
    def __init__(self, ttl_seconds: Optional[int] = None):
        self.ttl_seconds = ttl_seconds
        self._data: Dict[str, tuple] = {}
        self._lock = threading.Lock()

    def load(self, session_id: str) -> Dict[str, Any]:
        with self._lock:
            entry = self._data.get(session_id)
            if entry is None:
                return {}
            payload, expires_at = entry
            if expires_at is not None and expires_at < time.time():
                del self._data[session_id]
                return {}
            return copy.deepcopy(payload)

    def save(self, session_id: str, data: Dict[str, Any]) -> None:
        expires_at = time.time() + self.ttl_seconds if self.ttl_seconds else None
        with self._lock:
            self._data[session_id] = (copy.deepcopy(data), expires_at)

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._data.pop(session_id, None)

    def close(self) -> None:
        with self._lock:
            self._data.clear()


class RedisSessionStore(SessionStore):
    key_prefix = "exam-session:"

    def __init__(self, client, ttl_seconds: int):
        self.client = client
        self.ttl_seconds = ttl_seconds

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    def load(self, session_id: str) -> Dict[str, Any]:
        raw = self.client.get(self._key(session_id))
        if not raw:
            return {}
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding unreadable session payload for {session_id[:8]}…")
            return {}

    def save(self, session_id: str, data: Dict[str, Any]) -> None:
        self.client.set(self._key(session_id), json.dumps(data), ex=self.ttl_seconds)

    def delete(self, session_id: str) -> None:
        self.client.delete(self._key(session_id))

    def close(self) -> None:
        self.client.close()


def create_session_store() -> SessionStore:
    if settings.session_driver == "memory":
        logger.info("Using in-memory session store")
        return MemorySessionStore(ttl_seconds=settings.session_ttl_seconds)
    logger.info("Using Redis session store")
    return RedisSessionStore(create_redis_client(), settings.session_ttl_seconds)


class AttemptSession:
    """
    One browser session's view of the store.

    Answers are always stored as bare canonical letters keyed by question id, and
    times as whole seconds. Mutations stay in memory until ``save()``.
    """

    def __init__(self, store: SessionStore, session_id: str):
        self.store = store
        self.session_id = session_id
        self.data = store.load(session_id)

    # ---- identity ----
    @property
    def user_id(self) -> Optional[int]:
        return self.data.get("user_id")

    @property
    def user_name(self) -> Optional[str]:
        return self.data.get("user_name")

    def login(self, user_id: int, user_name: str) -> None:
        self.data["user_id"] = user_id
        self.data["user_name"] = user_name

    # ---- recorded answers ----
    @property
    def answers(self) -> Dict[str, str]:
        return self.data.get("answers") or {}

    @property
    def question_times(self) -> Dict[str, int]:
        return self.data.get("question_times") or {}

    @property
    def marked(self) -> List[int]:
        return self.data.get("marked") or []

    def get_answer(self, question_id: int) -> Optional[str]:
        return self.answers.get(str(question_id))

    def get_time(self, question_id: int) -> int:
        return int(self.question_times.get(str(question_id), 0))

    def set_answer(self, question_id: int, letter: str) -> None:
        self.data.setdefault("answers", {})[str(question_id)] = letter

    def set_time(self, question_id: int, seconds: int) -> None:
        self.data.setdefault("question_times", {})[str(question_id)] = max(0, int(seconds))

    def set_marked(self, question_id: int, marked: bool) -> None:
        current = [qid for qid in self.marked if qid != question_id]
        if marked:
            current.append(question_id)
        self.data["marked"] = current

    def counts(self) -> Dict[str, int]:
        return {
            "answered": len(self.answers),
            "timed": len(self.question_times),
            "marked": len(self.marked),
        }

    # ---- attempt timing ----
    @property
    def test_start_time(self) -> Optional[int]:
        return self.data.get("test_start_time")

    @property
    def question_start_time(self) -> Optional[int]:
        return self.data.get("question_start_time")

    @property
    def attempt_id(self) -> Optional[str]:
        return self.data.get("attempt_id")

    def start_attempt(self, test_id: int) -> None:
        self.data["test_start_time"] = now_ms()
        self.data["attempt_id"] = uuid.uuid4().hex
        self.completed_attempts.pop(str(test_id), None)

    def mark_question_start(self) -> None:
        self.data["question_start_time"] = now_ms()

    def seconds_on_current_question(self) -> int:
        started = self.question_start_time
        if not started:
            return 0
        return max(0, (now_ms() - started) // 1000)

    def elapsed_test_seconds(self) -> int:
        started = self.test_start_time
        if not started:
            return 0
        return max(0, (now_ms() - started) // 1000)

    @property
    def has_attempt_state(self) -> bool:
        return bool(self.test_start_time or self.answers or self.question_times)

    # ---- completion ----
    @property
    def completed_attempts(self) -> Dict[str, int]:
        return self.data.setdefault("completed_attempts", {})

    def record_completion(self, test_id: int, result_id: int) -> None:
        self.completed_attempts[str(test_id)] = result_id

    def clear_attempt(self) -> None:
        for key in ATTEMPT_KEYS:
            self.data.pop(key, None)

    def save(self) -> None:
        self.store.save(self.session_id, self.data)

    def destroy(self) -> None:
        self.data = {}
        self.store.delete(self.session_id)


# -----------------------
# Dependencies for FastAPI
# -----------------------
def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_attempt_session(request: Request) -> AttemptSession:
    return AttemptSession(get_session_store(request), request.state.session_id)
