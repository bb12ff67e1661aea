#!/usr/bin/env python3
"""
Session management module for the chat gateway.

Sessions are keyed per user and hold the conversation history used for
context resolution plus a separate TXQL conversation id. They live in
process memory by default, or in Redis with a TTL equal to the inactivity
window. Nothing survives a restart of the memory store.
"""

import json
import random
import string
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional

import redis

from .config import Config
from ..utils.logger import get_logger

logger = get_logger("session")

SESSION_KEY_PREFIX = "user_"


def generate_session_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=13))
    return f"session_{int(time.time() * 1000)}_{suffix}"


def session_key(user_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}{user_id or 'anonymous'}"


def new_session() -> Dict[str, Any]:
    now = datetime.now().isoformat()
    return {
        "sessionId": generate_session_id(),
        "txqlSessionId": generate_session_id(),
        "createdAt": now,
        "lastActive": now,
        "conversationHistory": [],
    }


def idle_minutes(session: Dict[str, Any], now: datetime = None) -> float:
    now = now or datetime.now()
    last_active = datetime.fromisoformat(session["lastActive"])
    return (now - last_active).total_seconds() / 60


class SessionStore(ABC):
    """Get-or-create, lookup, delete and sweep; the only way sessions change."""

    @abstractmethod
    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def get_or_create(self, user_id: str) -> Dict[str, Any]:
        """Return the user's session, creating it if needed, and touch lastActive."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, user_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def sweep_expired(self, max_age_minutes: float = None) -> int:
        """Drop sessions idle longer than max_age_minutes; return how many."""
        raise NotImplementedError

    @abstractmethod
    def append_history(self, user_id: str, entry: Dict[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    def count(self) -> int:
        raise NotImplementedError


class InMemorySessionStore(SessionStore):
    """Process-local store. Request handlers run in a threadpool, hence the lock."""

    def __init__(self):
        self._sessions: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._sessions.get(session_key(user_id))

    def get_or_create(self, user_id: str) -> Dict[str, Any]:
        key = session_key(user_id)
        with self._lock:
            session = self._sessions.get(key)
            if session is None:
                session = new_session()
                self._sessions[key] = session
                logger.info(f"[SESSION] created {session['sessionId']} for user {user_id}")
            else:
                session["lastActive"] = datetime.now().isoformat()
            return session

    def delete(self, user_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_key(user_id), None) is not None

    def sweep_expired(self, max_age_minutes: float = None) -> int:
        max_age = max_age_minutes if max_age_minutes is not None else Config.SESSION_MAX_AGE_MINUTES
        now = datetime.now()
        with self._lock:
            expired = [k for k, s in self._sessions.items() if idle_minutes(s, now) > max_age]
            for key in expired:
                del self._sessions[key]
        if expired:
            logger.info(f"[SESSION] cleaned up {len(expired)} old sessions")
        return len(expired)

    def append_history(self, user_id: str, entry: Dict[str, Any]) -> None:
        with self._lock:
            session = self._sessions.get(session_key(user_id))
            if session is not None:
                session["conversationHistory"].append(entry)

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)


class RedisSessionStore(SessionStore):
    """Session metadata as a JSON document plus history as a Redis list.

    Creation is a single ``SET NX`` and appends are ``RPUSH``, so concurrent
    requests for one user never overwrite each other. Redis expires idle
    sessions on its own.
    """

    CREATE_ATTEMPTS = 3

    def __init__(self, client: redis.Redis = None, max_age_minutes: float = None):
        self.client = client or redis.Redis(host=Config.REDIS_HOST, port=Config.REDIS_PORT,
                                            db=Config.REDIS_DB, decode_responses=True)
        max_age = max_age_minutes if max_age_minutes is not None else Config.SESSION_MAX_AGE_MINUTES
        self.ttl_seconds = int(max_age * 60)

    @staticmethod
    def _redis_key(user_id: str) -> str:
        return f"session:{session_key(user_id)}"

    @staticmethod
    def _history_key(session_id: str) -> str:
        # Keyed by session id so a recreated session never inherits old turns
        return f"session:history:{session_id}"

    @staticmethod
    def _metadata(session: Dict[str, Any]) -> str:
        return json.dumps({k: v for k, v in session.items() if k != "conversationHistory"}, default=str)

    def _load_metadata(self, user_id: str) -> Optional[Dict[str, Any]]:
        data = self.client.get(self._redis_key(user_id))
        return json.loads(data) if data else None

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        session = self._load_metadata(user_id)
        if session is None:
            return None
        entries = self.client.lrange(self._history_key(session["sessionId"]), 0, -1)
        session["conversationHistory"] = [json.loads(e) for e in entries]
        return session

    def get_or_create(self, user_id: str) -> Dict[str, Any]:
        key = self._redis_key(user_id)
        for _ in range(self.CREATE_ATTEMPTS):
            session = new_session()
            if self.client.set(key, self._metadata(session), nx=True, ex=self.ttl_seconds):
                logger.info(f"[SESSION] created {session['sessionId']} for user {user_id}")
                return session

            session = self.get(user_id)
            if session is None:
                # Expired or deleted between the two calls
                continue
            session["lastActive"] = datetime.now().isoformat()
            pipe = self.client.pipeline()
            pipe.set(key, self._metadata(session), xx=True, ex=self.ttl_seconds)
            pipe.expire(self._history_key(session["sessionId"]), self.ttl_seconds)
            pipe.execute()
            return session
        raise redis.RedisError(f"Could not create a session for user {user_id}")

    def delete(self, user_id: str) -> bool:
        session = self._load_metadata(user_id)
        if session is None:
            return False
        pipe = self.client.pipeline()
        pipe.delete(self._redis_key(user_id))
        pipe.delete(self._history_key(session["sessionId"]))
        return bool(pipe.execute()[0])

    def sweep_expired(self, max_age_minutes: float = None) -> int:
        # Expiry is handled by the key TTL
        return 0

    def append_history(self, user_id: str, entry: Dict[str, Any]) -> None:
        session = self._load_metadata(user_id)
        if session is None:
            return
        history_key = self._history_key(session["sessionId"])
        pipe = self.client.pipeline()
        pipe.rpush(history_key, json.dumps(entry, default=str))
        pipe.expire(history_key, self.ttl_seconds)
        pipe.execute()

    def count(self) -> int:
        return sum(1 for _ in self.client.scan_iter(match="session:user_*"))


def create_session_store() -> SessionStore:
    """Store selected by SESSION_BACKEND; falls back to memory when Redis is down."""
    if Config.SESSION_BACKEND == "redis":
        try:
            store = RedisSessionStore()
            store.client.ping()
            logger.info("[SESSION] using Redis for session storage")
            return store
        except redis.RedisError as e:
            logger.warning(f"[SESSION] Redis not available ({e}), using in-memory session storage")
    return InMemorySessionStore()


class SessionSweeper:
    """Background thread that sweeps expired sessions on a fixed interval."""

    def __init__(self, store: SessionStore, interval_minutes: float = None, max_age_minutes: float = None):
        self.store = store
        self.interval = (interval_minutes or Config.SESSION_SWEEP_INTERVAL_MINUTES) * 60
        self.max_age_minutes = max_age_minutes
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.store.sweep_expired(self.max_age_minutes)
            except redis.RedisError as e:
                logger.error(f"[SESSION] sweep failed: {e}")

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="session-sweeper", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=1)

