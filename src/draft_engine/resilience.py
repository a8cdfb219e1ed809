"""Resilience patterns for auto-pick: per-session circuit breaker and retry policy."""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Set

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import get_settings
from .draft_logging import get_logger, metrics
from .errors import PersistenceError
from .models import CircuitState

logger = get_logger(__name__)


@dataclass
class CircuitBreakerState:
    """Consecutive auto-pick failures for one draft session."""

    failures: int = 0
    state: CircuitState = CircuitState.CLOSED
    team_id: Optional[int] = None
    open_teams: Set[int] = field(default_factory=set)


@dataclass(frozen=True)
class BreakerStatus:
    failures: int
    state: CircuitState
    team_id: Optional[int] = None
    open_teams: FrozenSet[int] = frozenset()

    @property
    def tripped(self) -> bool:
        return self.state == CircuitState.OPEN


class DraftCircuitBreaker:
    """Circuit breaker keyed by draft session.

    The breaker counts consecutive auto-pick failures across the whole
    session, whichever team was acting. The failure that reaches the
    threshold opens it for that team, and every further failure while the
    count stays at or above the threshold opens it for the failing team too.
    Open teams need a manual pick until an auto-pick succeeds or ``reset`` is
    called. Other teams in the session keep auto-picking. State is in memory only and is lost on restart.
    """

    def __init__(self, failure_threshold: Optional[int] = None, name: str = "auto_pick"):
        if failure_threshold is None:
            failure_threshold = get_settings().CIRCUIT_BREAKER_THRESHOLD
        self.failure_threshold = failure_threshold
        self.name = name
        self._sessions: Dict[int, CircuitBreakerState] = {}

    def status(self, session_id: int) -> BreakerStatus:
        entry = self._sessions.get(session_id) or CircuitBreakerState()
        return BreakerStatus(failures=entry.failures, state=entry.state, team_id=entry.team_id,
                             open_teams=frozenset(entry.open_teams))

    def is_open_for(self, session_id: int, team_id: int) -> bool:
        entry = self._sessions.get(session_id)
        return bool(entry and entry.state == CircuitState.OPEN and team_id in entry.open_teams)

    def record_success(self, session_id: int) -> None:
        """Handle a successful auto-pick."""
        entry = self._sessions.pop(session_id, None)
        if entry and entry.state == CircuitState.OPEN:
            logger.info("circuit_breaker.closed", circuit_name=self.name, session_id=session_id)
            metrics.increment("circuit_breaker.state_change",
                              tags={"circuit": self.name, "to_state": "closed"})
        metrics.increment("circuit_breaker.calls", tags={"circuit": self.name, "result": "success"})

    def record_failure(self, session_id: int, team_id: int) -> BreakerStatus:
        """Handle a failed auto-pick and report whether the breaker tripped."""
        entry = self._sessions.setdefault(session_id, CircuitBreakerState())
        entry.failures += 1
        entry.team_id = team_id

        metrics.increment("circuit_breaker.calls", tags={"circuit": self.name, "result": "failure"})

        if entry.failures >= self.failure_threshold and team_id not in entry.open_teams:
            if entry.state == CircuitState.CLOSED:
                metrics.increment("circuit_breaker.state_change",
                                  tags={"circuit": self.name, "to_state": "open"})
            entry.state = CircuitState.OPEN
            entry.open_teams.add(team_id)
            logger.error(
                "circuit_breaker.opened",
                circuit_name=self.name,
                session_id=session_id,
                team_id=team_id,
                failure_count=entry.failures,
                threshold=self.failure_threshold,
            )
        else:
            logger.warning(
                "circuit_breaker.failure",
                circuit_name=self.name,
                session_id=session_id,
                team_id=team_id,
                failure_count=entry.failures,
            )
        return self.status(session_id)

    def reset(self, session_id: int) -> None:
        """Administrative escape hatch."""
        self._sessions.pop(session_id, None)
        logger.info("circuit_breaker.reset", circuit_name=self.name, session_id=session_id)


@dataclass
class RetryConfig:
    """Configuration for retrying transient persistence failures."""

    max_attempts: int = 3
    base_delay: float = 0.1
    max_delay: float = 2.0
    exponential_base: float = 2.0
    retry_on: tuple = field(default=(PersistenceError,))

    @classmethod
    def from_settings(cls) -> "RetryConfig":
        settings = get_settings()
        return cls(
            max_attempts=settings.AUTO_PICK_MAX_ATTEMPTS,
            base_delay=settings.RETRY_BACKOFF_BASE_S,
            max_delay=settings.RETRY_BACKOFF_MAX_S,
        )

    def retrying(self) -> AsyncRetrying:
        """Tenacity controller; re-raises the last error once attempts run out."""
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.base_delay,
                exp_base=self.exponential_base,
                max=self.max_delay,
            ),
            retry=retry_if_exception_type(self.retry_on),
            reraise=True,
        )
