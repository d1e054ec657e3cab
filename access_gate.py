# access_gate.py
# Session/role gate in front of every admin view.
#
# The gate listens to session changes pushed by the auth client, resolves the
# signed-in user's role from the profiles table and exposes one render state
# at a time: sign-in screen, spinner, access denied, or the dashboard.

import logging
import threading
import time
from concurrent.futures import Executor
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Protocol

logger = logging.getLogger(__name__)

PRIVILEGED_ROLES = frozenset({"admin", "staff"})


class GateState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    PENDING_AUTHORIZATION = "pending_authorization"
    DENIED = "denied"
    AUTHORIZED = "authorized"


class FailurePolicy(str, Enum):
    """What a failed or timed out role lookup means."""

    FAIL_CLOSED = "fail_closed"
    FAIL_OPEN = "fail_open"


class SessionLookupFailure(Exception):
    """The session provider could not be reached."""


class RoleLookupFailure(Exception):
    """The role resolver errored while reading the profile row."""


@dataclass(frozen=True)
class AuthSession:
    user_id: str
    access_token: str = ""
    email: Optional[str] = None
    expires_at: Optional[float] = None  # unix seconds

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        current = time.time() if now is None else now
        return current >= self.expires_at


@dataclass(frozen=True)
class RoleLookup:
    """Outcome of one role lookup, tagged with the session it was made for."""

    key: int
    user_id: str
    role: Optional[str] = None
    failed: bool = False
    timed_out: bool = False


class SessionProvider(Protocol):
    def current_session(self) -> Optional[AuthSession]: ...

    def subscribe(self, callback: Callable[[Optional[AuthSession]], None]) -> Callable[[], None]: ...

    def sign_out(self) -> None: ...


RoleResolver = Callable[[str], Optional[str]]
Listener = Callable[[GateState], None]


def decide(session: Optional[AuthSession], lookup: Optional[RoleLookup],
           policy: FailurePolicy = FailurePolicy.FAIL_CLOSED,
           now: Optional[float] = None) -> GateState:
    """Map a session and the role lookup made for it to a render state.

    `lookup` must belong to `session`; a lookup for another user counts as
    still pending. No row (role None) and non-privileged roles always deny.
    Only a lookup that failed or timed out is subject to `policy`.
    """
    if session is None or session.is_expired(now):
        return GateState.UNAUTHENTICATED
    if lookup is None or lookup.user_id != session.user_id:
        return GateState.PENDING_AUTHORIZATION
    if lookup.failed:
        if policy is FailurePolicy.FAIL_OPEN:
            return GateState.AUTHORIZED
        return GateState.DENIED
    if lookup.role in PRIVILEGED_ROLES:
        return GateState.AUTHORIZED
    return GateState.DENIED


class AccessGate:
    """Tracks the current session and its role lookup.

    Session changes and lookup results may arrive on any thread and in any
    order. Every lookup carries the generation of the session that started
    it; results for an older generation are dropped.
    """

    def __init__(self, sessions: SessionProvider, resolve_role: RoleResolver, *,
                 policy: FailurePolicy = FailurePolicy.FAIL_CLOSED,
                 timeout: Optional[float] = 5.0,
                 executor: Optional[Executor] = None,
                 clock: Callable[[], float] = time.monotonic,
                 wallclock: Callable[[], float] = time.time):
        self._sessions = sessions
        self._resolve_role = resolve_role
        self.policy = policy
        self.timeout = timeout
        self._executor = executor
        self._clock = clock
        self._wallclock = wallclock

        self._lock = threading.RLock()
        self._session: Optional[AuthSession] = None
        self._generation = 0
        self._lookup: Optional[RoleLookup] = None
        self._lookup_started: Optional[float] = None
        self._last_state = GateState.UNAUTHENTICATED
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._listeners: List[Listener] = []

    # ---------------- lifecycle ----------------

    def start(self) -> GateState:
        """Subscribe to session changes and evaluate the current session."""
        if self._unsubscribe is None:
            self._unsubscribe = self._sessions.subscribe(self.handle_session_change)
        try:
            session = self._sessions.current_session()
        except SessionLookupFailure as exc:
            logger.warning("Session lookup failed, treating as signed out: %s", exc)
            session = None
        self.handle_session_change(session)
        return self.state

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    # ---------------- events ----------------

    def handle_session_change(self, session: Optional[AuthSession]) -> None:
        dispatch = None
        with self._lock:
            current = self._session
            if (session is not None and current is not None and session.user_id == current.user_id
                    and not current.is_expired(self._wallclock())):
                # token refresh for the same user keeps the resolved role
                self._session = session
            else:
                self._session = session
                self._generation += 1
                self._lookup = None
                self._lookup_started = None
                if session is not None:
                    self._lookup_started = self._clock()
                    dispatch = (self._generation, session.user_id)
        self._publish()
        if dispatch is not None:
            self._dispatch(*dispatch)

    def sign_out(self) -> None:
        """Sign out through the provider; always ends UNAUTHENTICATED."""
        try:
            self._sessions.sign_out()
        except Exception as exc:
            logger.warning("Sign out call failed, clearing local session anyway: %s", exc)
        self.handle_session_change(None)

    def apply_lookup(self, lookup: RoleLookup) -> bool:
        """Record a lookup result. Returns False when it was discarded as stale."""
        with self._lock:
            if lookup.key != self._generation or self._session is None:
                logger.debug("Discarding stale role lookup for %s (generation %s, current %s)",
                             lookup.user_id, lookup.key, self._generation)
                return False
            if self._lookup is not None:
                logger.debug("Discarding late role lookup for %s, already settled", lookup.user_id)
                return False
            self._lookup = lookup
        self._publish()
        return True

    def _dispatch(self, key: int, user_id: str) -> None:
        if self._executor is None:
            self._run_lookup(key, user_id)
        else:
            self._executor.submit(self._run_lookup, key, user_id)

    def _run_lookup(self, key: int, user_id: str) -> None:
        try:
            role = self._resolve_role(user_id)
        except Exception as exc:
            logger.warning("Role lookup failed for %s: %s", user_id, exc)
            self.apply_lookup(RoleLookup(key=key, user_id=user_id, failed=True))
            return
        self.apply_lookup(RoleLookup(key=key, user_id=user_id, role=role))

    def _expire_pending_lookup(self) -> None:
        if self.timeout is None:
            return
        with self._lock:
            if self._session is None or self._lookup is not None or self._lookup_started is None:
                return
            if self._clock() - self._lookup_started < self.timeout:
                return
            logger.warning("Role lookup for %s timed out after %.1fs", self._session.user_id, self.timeout)
            self._lookup = RoleLookup(key=self._generation, user_id=self._session.user_id,
                                      failed=True, timed_out=True)

    # ---------------- views ----------------

    @property
    def state(self) -> GateState:
        return self._publish()

    def _evaluate(self) -> GateState:
        self._expire_pending_lookup()
        with self._lock:
            return decide(self._session, self._lookup, self.policy, now=self._wallclock())

    @property
    def session(self) -> Optional[AuthSession]:
        with self._lock:
            return self._session

    @property
    def role(self) -> Optional[str]:
        with self._lock:
            if self._lookup is None:
                return None
            return self._lookup.role

    @property
    def lookup_timed_out(self) -> bool:
        with self._lock:
            return self._lookup is not None and self._lookup.timed_out

    def _publish(self) -> GateState:
        state = self._evaluate()
        with self._lock:
            changed = state is not self._last_state
            self._last_state = state
        if not changed:
            return state
        logger.info("Access gate -> %s", state.value)
        for listener in list(self._listeners):
            listener(state)
        return state
