"""
Circuit breaker for calls to the primary store.

States:
    CLOSED: calls pass through; outcomes go into a rolling window of the last
        `window_size` calls. When failures reach `error_threshold_percentage`
        of the window the circuit opens.
    OPEN: calls are rejected with CircuitOpenError without being attempted,
        until `reset_timeout` seconds have elapsed.
    HALF_OPEN: up to `half_open_max_calls` probe calls are let through. A
        successful probe closes the circuit (window cleared); a failed probe
        re-opens it and restarts the reset timer.

Each call is raced against `timeout`; a call that exceeds it is cancelled and
counted as a failure even if the operation would have succeeded later.

State lives in plain attributes updated between awaits, so callers sharing a
breaker on one event loop never observe a half-applied transition. Sharing a
breaker across threads would need a lock around `_before_call` and the
outcome handlers.

Example:
    >>> registry = CircuitBreakerRegistry(CircuitBreakerSettings())
    >>> breaker = registry.get_or_create("mongodb")
    >>> docs = await breaker.call(lambda: collection.find({}).to_list(None))
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Protocol, Tuple, Type, TypeVar, Union

from media_catalog.errors import DependencyUnavailableError, GatewayTimeoutError
from media_catalog.settings import CircuitBreakerSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")
Operation = Callable[[], Awaitable[T]]


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(DependencyUnavailableError):
    """Raised instead of calling a dependency whose circuit is open"""

    def __init__(self, name: str):
        super().__init__(f"Service '{name}' unavailable (circuit open)", service=name)


class CallTimeoutError(GatewayTimeoutError):
    def __init__(self, name: str, timeout: float):
        super().__init__(f"Call to '{name}' timed out after {timeout:.3g}s")
        self.service = name
        self.timeout = timeout


@dataclass
class CircuitStats:
    calls: int = 0
    successes: int = 0
    failures: int = 0
    timeouts: int = 0
    rejections: int = 0
    state_changes: int = 0


class Breaker(Protocol):
    name: str

    async def call(self, operation: Operation) -> Any: ...

    @property
    def state(self) -> CircuitState: ...

    def snapshot(self) -> Dict[str, Any]: ...

    def reset(self) -> None: ...


class CircuitBreaker:
    """Rolling-window, percentage-threshold circuit breaker for async operations"""

    def __init__(
        self,
        name: str,
        timeout: Optional[float] = 10.0,
        error_threshold_percentage: float = 50.0,
        reset_timeout: float = 30.0,
        window_size: int = 10,
        half_open_max_calls: int = 1,
        excluded_exceptions: Tuple[Type[BaseException], ...] = (),
        clock: Callable[[], float] = time.monotonic,
    ):
        if window_size < 1:
            raise ValueError("window_size must be >= 1")
        if not 0 < error_threshold_percentage <= 100:
            raise ValueError("error_threshold_percentage must be in (0, 100]")
        if half_open_max_calls < 1:
            raise ValueError("half_open_max_calls must be >= 1")

        self.name = name
        self.timeout = timeout
        self.error_threshold_percentage = error_threshold_percentage
        self.reset_timeout = reset_timeout
        self.window_size = window_size
        self.half_open_max_calls = half_open_max_calls
        self.excluded_exceptions = excluded_exceptions
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._window: Deque[bool] = deque(maxlen=window_size)  # True = failure
        self._opened_at: Optional[float] = None
        self._half_open_in_flight = 0
        self._last_transition_at = datetime.now(timezone.utc)
        self._stats = CircuitStats()

    # ---- state ----

    @property
    def state(self) -> CircuitState:
        self._refresh()
        return self._state

    @property
    def failure_percentage(self) -> float:
        """Failures as a percentage of the window capacity"""
        return sum(self._window) * 100.0 / self.window_size

    @property
    def stats(self) -> CircuitStats:
        return self._stats

    def _refresh(self) -> None:
        if (
            self._state == CircuitState.OPEN
            and self._opened_at is not None
            and self._clock() - self._opened_at >= self.reset_timeout
        ):
            self._transition(CircuitState.HALF_OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._stats.state_changes += 1
        self._last_transition_at = datetime.now(timezone.utc)
        self._half_open_in_flight = 0

        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
            logger.warning(
                f"Circuit breaker '{self.name}' opened ({old_state.value} -> open, "
                f"failure rate {self.failure_percentage:.0f}%)"
            )
        elif new_state == CircuitState.HALF_OPEN:
            logger.info(f"Circuit breaker '{self.name}' half-open, allowing probe calls")
        else:
            self._window.clear()
            self._opened_at = None
            logger.info(f"Circuit breaker '{self.name}' closed ({old_state.value} -> closed)")

    # ---- call path ----

    def _before_call(self) -> bool:
        """Admit or reject a call; returns True when the call is a half-open probe"""
        self._refresh()
        self._stats.calls += 1

        if self._state == CircuitState.OPEN:
            self._reject()
        if self._state == CircuitState.HALF_OPEN:
            if self._half_open_in_flight >= self.half_open_max_calls:
                self._reject()
            self._half_open_in_flight += 1
            return True
        return False

    def _reject(self) -> None:
        self._stats.rejections += 1
        logger.warning(f"Circuit breaker '{self.name}' rejected call ({self._state.value})")
        raise CircuitOpenError(self.name)

    def _on_success(self, probe: bool) -> None:
        self._stats.successes += 1
        if probe and self._state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.CLOSED)
        elif self._state == CircuitState.CLOSED:
            self._window.append(False)

    def _on_failure(self, probe: bool, error: BaseException) -> None:
        self._stats.failures += 1
        logger.error(f"Circuit breaker '{self.name}' recorded failure: {error!r}")
        if probe and self._state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
        elif self._state == CircuitState.CLOSED:
            self._window.append(True)
            if self.failure_percentage >= self.error_threshold_percentage:
                self._transition(CircuitState.OPEN)

    async def call(self, operation: Operation) -> T:
        """
        Run `operation()` under the breaker.

        Raises:
            CircuitOpenError: circuit open, or half-open with all probe slots taken
            CallTimeoutError: the call exceeded `timeout`
            Exception: whatever the operation raised (after being recorded)
        """
        probe = self._before_call()
        try:
            if self.timeout:
                result = await asyncio.wait_for(operation(), timeout=self.timeout)
            else:
                result = await operation()
        except asyncio.TimeoutError as e:
            self._stats.timeouts += 1
            logger.warning(f"Circuit breaker '{self.name}' call timed out after {self.timeout}s")
            self._on_failure(probe, e)
            raise CallTimeoutError(self.name, self.timeout or 0.0) from e
        except self.excluded_exceptions:
            raise
        except Exception as e:
            self._on_failure(probe, e)
            raise
        else:
            self._on_success(probe)
            return result
        finally:
            if probe and self._state == CircuitState.HALF_OPEN and self._half_open_in_flight > 0:
                self._half_open_in_flight -= 1

    def reset(self) -> None:
        """Force the circuit closed (operator action)"""
        if self._state != CircuitState.CLOSED:
            self._transition(CircuitState.CLOSED)
        self._window.clear()
        logger.info(f"Circuit breaker '{self.name}' manually reset")

    def snapshot(self) -> Dict[str, Any]:
        state = self.state
        return {
            "name": self.name,
            "enabled": True,
            "state": state.value,
            "failures_in_window": sum(self._window),
            "window_fill": len(self._window),
            "window_size": self.window_size,
            "failure_percentage": round(self.failure_percentage, 2),
            "last_transition_at": self._last_transition_at.isoformat(),
            "stats": asdict(self._stats),
        }


class PassthroughBreaker:
    """Disabled breaker: runs every call directly and tracks nothing"""

    def __init__(self, name: str):
        self.name = name

    @property
    def state(self) -> CircuitState:
        return CircuitState.CLOSED

    async def call(self, operation: Operation) -> T:
        return await operation()

    def reset(self) -> None:
        pass

    def snapshot(self) -> Dict[str, Any]:
        return {"name": self.name, "enabled": False, "state": CircuitState.CLOSED.value}


AnyBreaker = Union[CircuitBreaker, PassthroughBreaker]


class CircuitBreakerRegistry:
    """
    Named breakers, created on first use and kept for the registry's lifetime.

    Pass one registry through construction (see api.dependencies) instead of
    sharing module-level state, so tests get isolated breakers.
    """

    def __init__(
        self,
        settings: Optional[CircuitBreakerSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or CircuitBreakerSettings()
        self._clock = clock
        self._breakers: Dict[str, AnyBreaker] = {}

    def get_or_create(self, name: str, **overrides: Any) -> AnyBreaker:
        existing = self._breakers.get(name)
        if existing is not None:
            return existing

        enabled = overrides.pop("enabled", self.settings.enabled)
        if not enabled:
            logger.info(f"Circuit breaker '{name}' disabled, using passthrough")
            breaker: AnyBreaker = PassthroughBreaker(name)
        else:
            options = {
                "timeout": self.settings.timeout,
                "error_threshold_percentage": self.settings.error_threshold_percentage,
                "reset_timeout": self.settings.reset_timeout,
                "window_size": self.settings.window_size,
                "half_open_max_calls": self.settings.half_open_max_calls,
                "clock": self._clock,
            }
            options.update(overrides)
            breaker = CircuitBreaker(name, **options)
            logger.info(
                f"Circuit breaker '{name}' created (timeout={breaker.timeout}s, "
                f"threshold={breaker.error_threshold_percentage}%, window={breaker.window_size}, "
                f"reset={breaker.reset_timeout}s)"
            )
        self._breakers[name] = breaker
        return breaker

    def get(self, name: str) -> Optional[AnyBreaker]:
        return self._breakers.get(name)

    def states(self) -> Dict[str, Dict[str, Any]]:
        return {name: breaker.snapshot() for name, breaker in self._breakers.items()}

    def reset(self, name: str) -> bool:
        breaker = self._breakers.get(name)
        if breaker is None:
            return False
        breaker.reset()
        return True

    def __contains__(self, name: str) -> bool:
        return name in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)
