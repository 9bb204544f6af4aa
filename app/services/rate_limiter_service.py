"""Admission control for outgoing SMS.

Decides whether a message may be sent to a phone number right now. Two quotas
apply at once over a sliding window: one per phone number and one shared by
the whole account. Hitting a quota sets a cooldown marker that blocks further
attempts for that number (or for the whole account) until it expires.

The service keeps no mutable state of its own. Counters and cooldown markers
live in the injected counter store so any number of workers can enforce one
logical quota. The only step that must be atomic is the conditional increment
of both counters, which the store performs as a single operation.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from app.adapters.counter_store.base import AbstractCounterStore
from app.core.config import CooldownPriority
from app.core.errors import StoreAppError
from app.core.logging import phone_log_fields

logger = logging.getLogger(__name__)


class DecisionReason(str, Enum):
    ALLOWED = "allowed"
    NUMBER_COOLDOWN = "number_cooldown"
    ACCOUNT_COOLDOWN = "account_cooldown"
    NUMBER_LIMIT = "number_limit"
    ACCOUNT_LIMIT = "account_limit"
    # Increment aborted but neither counter was at its cap when re-read.
    CONTENTION = "contention"
    STORE_UNAVAILABLE = "store_unavailable"


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of one admission check.

    Attributes:
        allowed: Whether the message may be sent.
        reason: Why the decision was made.
        retry_after_seconds: Suggested wait before retrying (None when allowed).
    """

    allowed: bool
    reason: DecisionReason
    retry_after_seconds: float | None = None


@dataclass(frozen=True)
class RateLimitKeys:
    """Store key layout for counters and cooldown markers."""

    number_prefix: str = "sms_limit:"
    account: str = "account_limit"
    cooldown_prefix: str = "cooldown:"

    def number_counter(self, phone_number: str) -> str:
        return f"{self.number_prefix}{phone_number}"

    def number_cooldown(self, phone_number: str) -> str:
        return f"{self.cooldown_prefix}{phone_number}"

    @property
    def account_cooldown(self) -> str:
        return f"{self.cooldown_prefix}{self.account}"


class RateLimiterService:
    """Per-number and per-account admission controller.

    Safe for concurrent use: the instance only holds read-only configuration
    and the store handle.
    """

    def __init__(
        self,
        store: AbstractCounterStore,
        *,
        max_per_number: int,
        max_per_account: int,
        window_seconds: float = 1.0,
        cooldown_seconds: float = 1.0,
        cooldown_priority: CooldownPriority = CooldownPriority.SCOPE_FIRST,
        keys: RateLimitKeys | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the controller.

        Args:
            store: Shared counter store.
            max_per_number: Sends allowed per phone number within one window.
            max_per_account: Sends allowed across the account within one window.
            window_seconds: Sliding window size.
            cooldown_seconds: How long a cooldown marker blocks attempts.
            cooldown_priority: Which marker to set when both quotas are
                exhausted at the same time.
            keys: Store key layout.
            clock: Time source returning UNIX time in seconds.

        Raises:
            ValueError: If a limit or duration is invalid.
        """
        if max_per_number < 1:
            raise ValueError("max_per_number must be >= 1")
        if max_per_account < 1:
            raise ValueError("max_per_account must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if cooldown_seconds <= 0:
            raise ValueError("cooldown_seconds must be > 0")

        self._store = store
        self._max_per_number = max_per_number
        self._max_per_account = max_per_account
        self._window_seconds = window_seconds
        self._cooldown_seconds = cooldown_seconds
        self._cooldown_priority = CooldownPriority(cooldown_priority)
        self._keys = keys or RateLimitKeys()
        self._clock = clock

    @property
    def store(self) -> AbstractCounterStore:
        return self._store

    @property
    def cooldown_seconds(self) -> float:
        return self._cooldown_seconds

    async def can_send(self, phone_number: str) -> bool:
        """Return True when a message may be sent to ``phone_number`` now.

        Never raises: quota rejections and store failures both return False.
        The caller must pass a non-empty phone number.
        """
        decision = await self.evaluate(phone_number)
        return decision.allowed

    async def evaluate(self, phone_number: str) -> AdmissionDecision:
        """Run the admission check and return the decision with its reason."""
        log_fields = phone_log_fields(phone_number)

        try:
            decision = await self._decide(phone_number)
        except StoreAppError as exc:
            details = exc.details or {}
            logger.error(
                "rate_limiter.store_error",
                extra={
                    **log_fields,
                    "error_code": exc.code,
                    "error_msg": exc.message,
                    "operation": details.get("operation"),
                },
            )
            return self._reject(DecisionReason.STORE_UNAVAILABLE)
        except Exception:
            logger.exception("rate_limiter.unexpected_error", extra=log_fields)
            return self._reject(DecisionReason.STORE_UNAVAILABLE)

        if decision.allowed:
            logger.info("rate_limiter.allowed", extra=log_fields)
        else:
            logger.warning(
                "rate_limiter.rejected",
                extra={
                    **log_fields,
                    "reason": decision.reason.value,
                    "retry_after_s": decision.retry_after_seconds,
                },
            )
        return decision

    async def _decide(self, phone_number: str) -> AdmissionDecision:
        # Cooldown markers only ever block, so two independent reads suffice.
        if await self._store.is_flag_set(self._keys.number_cooldown(phone_number)):
            return self._reject(DecisionReason.NUMBER_COOLDOWN)
        if await self._store.is_flag_set(self._keys.account_cooldown):
            return self._reject(DecisionReason.ACCOUNT_COOLDOWN)

        applied = await self._store.try_atomic_dual_increment(
            self._keys.number_counter(phone_number),
            self._keys.account,
            identity_cap=self._max_per_number,
            scope_cap=self._max_per_account,
            now=self._clock(),
            window_seconds=self._window_seconds,
        )
        if applied:
            return AdmissionDecision(allowed=True, reason=DecisionReason.ALLOWED)

        return await self._escalate(phone_number)

    async def _escalate(self, phone_number: str) -> AdmissionDecision:
        """Set cooldown markers for whichever quota caused the rejection."""
        now = self._clock()
        number_count, account_count = await asyncio.gather(
            self._store.cardinality(
                self._keys.number_counter(phone_number),
                now=now,
                window_seconds=self._window_seconds,
            ),
            self._store.cardinality(
                self._keys.account,
                now=now,
                window_seconds=self._window_seconds,
            ),
        )
        number_full = number_count >= self._max_per_number
        account_full = account_count >= self._max_per_account

        exhausted = self._select_cooldowns(number_full=number_full, account_full=account_full)
        if not exhausted:
            return self._reject(DecisionReason.CONTENTION, retry_after=self._window_seconds)

        for reason in exhausted:
            key = (
                self._keys.account_cooldown
                if reason is DecisionReason.ACCOUNT_LIMIT
                else self._keys.number_cooldown(phone_number)
            )
            await self._store.set_flag(key, self._cooldown_seconds)
            logger.warning(
                "rate_limiter.cooldown_set",
                extra={
                    **phone_log_fields(phone_number),
                    "scope": "account" if reason is DecisionReason.ACCOUNT_LIMIT else "number",
                    "number_count": number_count,
                    "account_count": account_count,
                    "cooldown_s": self._cooldown_seconds,
                },
            )

        return self._reject(exhausted[0])

    def _select_cooldowns(self, *, number_full: bool, account_full: bool) -> list[DecisionReason]:
        """Apply the cooldown priority policy to the exhausted quotas."""
        if self._cooldown_priority is CooldownPriority.BOTH:
            selected = []
            if account_full:
                selected.append(DecisionReason.ACCOUNT_LIMIT)
            if number_full:
                selected.append(DecisionReason.NUMBER_LIMIT)
            return selected

        if self._cooldown_priority is CooldownPriority.NUMBER_FIRST:
            ordered = [(number_full, DecisionReason.NUMBER_LIMIT), (account_full, DecisionReason.ACCOUNT_LIMIT)]
        else:
            ordered = [(account_full, DecisionReason.ACCOUNT_LIMIT), (number_full, DecisionReason.NUMBER_LIMIT)]

        for full, reason in ordered:
            if full:
                return [reason]
        return []

    def _reject(self, reason: DecisionReason, retry_after: float | None = None) -> AdmissionDecision:
        return AdmissionDecision(
            allowed=False,
            reason=reason,
            retry_after_seconds=retry_after if retry_after is not None else self._cooldown_seconds,
        )
