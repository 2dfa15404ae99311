"""
Checkout session persistence.

Status changes go through ``compare_and_set`` only, so a webhook and a
reconciliation racing on the same session cannot both apply.
"""
from __future__ import annotations

import asyncio
import copy
import dataclasses
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Union

from .exceptions import SessionNotFoundError, StateConflictError
from .models.session import CheckoutSession, CheckoutStatus, can_transition

logger = logging.getLogger(__name__)

IMMUTABLE_FIELDS = frozenset({"session_id", "shop_id", "currency", "created_at"})

ExpectedStatus = Union[CheckoutStatus, Iterable[CheckoutStatus]]


class SessionStore(ABC):
    """Abstract storage for checkout sessions."""

    @abstractmethod
    async def create(self, session: CheckoutSession) -> CheckoutSession:
        pass

    @abstractmethod
    async def get(self, session_id: str) -> CheckoutSession:
        """
        Raises:
            SessionNotFoundError: If no session has this id
        """
        pass

    @abstractmethod
    async def find_by_transaction_id(self, transaction_id: str) -> Optional[CheckoutSession]:
        pass

    @abstractmethod
    async def compare_and_set(
        self,
        session_id: str,
        expected: ExpectedStatus,
        status: CheckoutStatus,
        **fields: Any,
    ) -> CheckoutSession:
        """
        Atomically move a session from an expected status to ``status``.

        Raises:
            SessionNotFoundError: If no session has this id
            StateConflictError: If the current status is not expected or the
                transition is not allowed
        """
        pass


class InMemorySessionStore(SessionStore):
    """
    In-memory session store.

    Sessions are deep-copied in and out so callers never share the stored
    instance or its cart snapshot. Each open session has its own lock, dropped
    once the session is terminal; there is no global lock.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, CheckoutSession] = {}
        self._by_transaction: Dict[str, str] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def create(self, session: CheckoutSession) -> CheckoutSession:
        if session.session_id in self._sessions:
            raise ValueError(f"Session already exists: {session.session_id}")
        self._sessions[session.session_id] = copy.deepcopy(session)
        if not session.status.is_terminal:
            self._locks[session.session_id] = asyncio.Lock()
        self._index(session)
        logger.debug(f"Session stored: session_id={session.session_id}, shop_id={session.shop_id}")
        return copy.deepcopy(session)

    async def get(self, session_id: str) -> CheckoutSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return copy.deepcopy(session)

    async def find_by_transaction_id(self, transaction_id: str) -> Optional[CheckoutSession]:
        session_id = self._by_transaction.get(transaction_id)
        if session_id is None:
            return None
        return await self.get(session_id)

    async def compare_and_set(
        self,
        session_id: str,
        expected: ExpectedStatus,
        status: CheckoutStatus,
        **fields: Any,
    ) -> CheckoutSession:
        illegal = IMMUTABLE_FIELDS.intersection(fields)
        if illegal:
            raise ValueError(f"Cannot change session fields: {', '.join(sorted(illegal))}")

        expected_set = {expected} if isinstance(expected, CheckoutStatus) else set(expected)

        lock = self._locks.get(session_id)
        if lock is None:
            # Terminal sessions accept no transitions
            current = self._sessions.get(session_id)
            if current is None:
                raise SessionNotFoundError(session_id)
            raise StateConflictError(session_id, current.status.value, status.value)

        async with lock:
            current = self._sessions.get(session_id)
            if current is None:
                raise SessionNotFoundError(session_id)
            if current.status not in expected_set or not can_transition(current.status, status):
                raise StateConflictError(session_id, current.status.value, status.value)

            updated = copy.deepcopy(dataclasses.replace(
                current,
                status=status,
                updated_at=datetime.now(timezone.utc),
                **fields,
            ))
            self._sessions[session_id] = updated
            self._index(updated)
            if status.is_terminal:
                self._locks.pop(session_id, None)

        logger.debug(
            f"Session transition: session_id={session_id}, "
            f"{current.status.value} -> {status.value}"
        )
        return copy.deepcopy(updated)

    def _index(self, session: CheckoutSession) -> None:
        if session.transaction_id:
            self._by_transaction[session.transaction_id] = session.session_id


__all__ = ["SessionStore", "InMemorySessionStore"]
