"""Safety classification and deposit gating driven by the buffer ratio."""

import sys
import threading
import time
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from tranche_economics.constants import DEFAULT_LEVEL_POLICIES, DEFAULT_SAFETY_THRESHOLDS, TOTAL_BASIS_POINTS
from tranche_economics.errors import ConfigurationError
from tranche_economics.models import DepositCheck, LevelPolicy, SafetyLevel
from tranche_economics.permissions import Caller, Role, require_role
from tranche_economics.rate_math import buffer_ratio
from tranche_economics.validation import validate_level_policies, validate_thresholds

if TYPE_CHECKING:
    from tranche_economics.distribution import DistributionController  # pragma: no cover


def classify_level(ratio_bps: int, thresholds: Sequence[int] = DEFAULT_SAFETY_THRESHOLDS) -> SafetyLevel:
    """Map a buffer ratio to a safety level using four strictly descending thresholds."""
    validate_thresholds(thresholds, warn_only=False)
    if not 0 <= ratio_bps <= TOTAL_BASIS_POINTS:
        raise ConfigurationError(f"buffer ratio out of range: {ratio_bps} bps")
    for level, threshold in zip(SafetyLevel, thresholds):
        if ratio_bps >= threshold:
            return level
    return SafetyLevel.CRITICAL


def default_level_policies() -> tuple[LevelPolicy, ...]:
    """Policies for HEALTHY through CRITICAL, in level order."""
    return tuple(LevelPolicy(*row) for row in DEFAULT_LEVEL_POLICIES)


class SafetyController:
    """
    Holds the current safety level and the deposit-pause flags.

    The level moves only through ``update_level`` / ``health_check``, both of which re-read the
    live principals. Entering CRITICAL with auto-pause on pauses deposits on both tranches;
    withdrawals are never paused, and leaving CRITICAL does not unpause.
    """

    def __init__(
        self,
        principal_source: "DistributionController",
        policies: Sequence[LevelPolicy] | None = None,
        *,
        auto_pause: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        policies = tuple(policies) if policies is not None else default_level_policies()
        validate_level_policies(policies, warn_only=False)
        self._source = principal_source
        self._policies = policies
        self._clock = clock
        self._lock = threading.RLock()
        self.auto_pause = auto_pause
        self.protected_deposits_paused = False
        self.leveraged_deposits_paused = False
        self.level = SafetyLevel.HEALTHY
        # (timestamp, from, to, ratio_bps)
        self.transitions: list[tuple[int, SafetyLevel, SafetyLevel, int]] = []
        self._refresh(self.current_ratio())

    @property
    def thresholds(self) -> tuple[int, ...]:
        """Classification thresholds (minimum ratios of HEALTHY through DANGER)."""
        return tuple(p.min_buffer_ratio_bps for p in self._policies[: len(SafetyLevel) - 1])

    def policy(self, level: SafetyLevel | None = None) -> LevelPolicy:
        """Policy for ``level`` (current level by default)."""
        return self._policies[self.level if level is None else level]

    def target_rate(self) -> int:
        """Target protected rate of the current level."""
        return self.policy().target_protected_rate_bps

    def current_ratio(self) -> int:
        """Live buffer ratio. No principal at all counts as fully buffered."""
        protected, leveraged = self._source.principals()
        if protected + leveraged == 0:
            return TOTAL_BASIS_POINTS
        return buffer_ratio(protected, leveraged)

    def update_level(self, *, caller: Caller) -> SafetyLevel:
        """Keeper-triggered reclassification."""
        require_role(caller, Role.KEEPER, "update_level")
        return self._refresh(self.current_ratio())

    def health_check(self) -> SafetyLevel:
        """Reclassify from live principals. Anyone may call this."""
        return self._refresh(self.current_ratio())

    def _refresh(self, ratio: int) -> SafetyLevel:
        with self._lock:
            new_level = classify_level(ratio, self.thresholds)
            if new_level == self.level:
                return new_level
            self.transitions.append((int(self._clock()), self.level, new_level, ratio))
            self.level = new_level
            if new_level == SafetyLevel.CRITICAL:
                print(f"🚨 Safety level CRITICAL (buffer ratio {ratio} bps)", file=sys.stderr)
                if self.auto_pause:
                    self.protected_deposits_paused = True
                    self.leveraged_deposits_paused = True
            return new_level

    def check_deposit(self, is_protected: bool, amount: int) -> DepositCheck:
        """Would a deposit of ``amount`` into the given tranche be accepted right now?"""
        if amount <= 0:
            return DepositCheck(False, "amount must be > 0")
        protected, leveraged = self._source.principals()
        with self._lock:
            policy = self.policy()
            level_name = self.level.name
            if not is_protected:
                if self.leveraged_deposits_paused:
                    return DepositCheck(False, "leveraged deposits paused")
                if not policy.leveraged_deposits_enabled:
                    return DepositCheck(False, f"leveraged deposits disabled at {level_name}")
                return DepositCheck(True)

            if self.protected_deposits_paused:
                return DepositCheck(False, "protected deposits paused")
            if not policy.protected_deposits_enabled:
                return DepositCheck(False, f"protected deposits disabled at {level_name}")
            if policy.max_protected_deposit and protected + amount > policy.max_protected_deposit:
                return DepositCheck(
                    False,
                    f"protected deposit ceiling {policy.max_protected_deposit} exceeded at {level_name}",
                )
            new_ratio = buffer_ratio(protected + amount, leveraged)
            if new_ratio < policy.min_buffer_ratio_bps:
                return DepositCheck(
                    False,
                    f"deposit would lower buffer ratio to {new_ratio} bps "
                    f"(minimum {policy.min_buffer_ratio_bps} bps at {level_name})",
                )
            return DepositCheck(True)

    # --- admin ---

    def set_level_policy(self, level: SafetyLevel, policy: LevelPolicy, *, caller: Caller) -> None:
        """Replace one level's policy. Takes effect at the next reclassification."""
        require_role(caller, Role.ADMIN, "set_level_policy")
        with self._lock:
            policies = list(self._policies)
            policies[level] = policy
            validate_level_policies(policies, warn_only=False)
            self._policies = tuple(policies)

    def pause_deposits(self, *, protected: bool = True, leveraged: bool = True, caller: Caller) -> None:
        """Manually pause deposits."""
        require_role(caller, Role.ADMIN, "pause_deposits")
        with self._lock:
            self.protected_deposits_paused = self.protected_deposits_paused or protected
            self.leveraged_deposits_paused = self.leveraged_deposits_paused or leveraged

    def unpause_deposits(self, *, caller: Caller) -> None:
        """Lift both deposit pauses."""
        require_role(caller, Role.ADMIN, "unpause_deposits")
        with self._lock:
            self.protected_deposits_paused = False
            self.leveraged_deposits_paused = False

    def set_auto_pause(self, enabled: bool, *, caller: Caller) -> None:
        """Toggle auto-pause on entering CRITICAL."""
        require_role(caller, Role.ADMIN, "set_auto_pause")
        self.auto_pause = enabled
