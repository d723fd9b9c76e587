"""Distribution controller: principal counters, dynamic fixed rate and the harvest cycle."""

import sys
import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from tranche_economics.constants import (
    DEFAULT_BASE_RATE_BPS,
    DEFAULT_MAX_RATE_BPS,
    DEFAULT_MIN_RATE_BPS,
    DEFAULT_PROTOCOL_FEE_BPS,
    MAX_PROTOCOL_FEE_BPS,
    TOTAL_BASIS_POINTS,
)
from tranche_economics.errors import ConfigurationError, EmergencyModeError, SequencingError
from tranche_economics.ledger import TrancheVault, Treasury
from tranche_economics.models import DepositOutcome, HarvestReport
from tranche_economics.permissions import Caller, Role, require_role, system_caller
from tranche_economics.rate_math import buffer_ratio, dynamic_rate, leverage
from tranche_economics.waterfall import distribute

if TYPE_CHECKING:
    from tranche_economics.safety import SafetyController  # pragma: no cover


def _validate_rate_bounds(base_rate_bps: int, min_rate_bps: int, max_rate_bps: int) -> None:
    if not 0 <= min_rate_bps <= max_rate_bps <= TOTAL_BASIS_POINTS:
        raise ConfigurationError(f"invalid rate bounds: min={min_rate_bps}, max={max_rate_bps}")
    if not min_rate_bps <= base_rate_bps <= max_rate_bps:
        raise ConfigurationError(f"base rate {base_rate_bps} outside [{min_rate_bps}, {max_rate_bps}]")


def _validate_protocol_fee(protocol_fee_bps: int) -> None:
    if not 0 <= protocol_fee_bps <= MAX_PROTOCOL_FEE_BPS:
        raise ConfigurationError(f"protocol fee {protocol_fee_bps} bps outside [0, {MAX_PROTOCOL_FEE_BPS}]")


class DistributionController:
    """
    Owns the principal counters of both tranches and runs the waterfall on each harvest.

    The tranche vaults are the source of truth for principal. The controller's counters follow
    register/deregister calls and are reconciled against the vaults at the start of every harvest
    and after any slash, so the waterfall always runs on live figures.

    All mutations are serialized behind one re-entrant lock.
    """

    def __init__(
        self,
        protected_vault: TrancheVault,
        leveraged_vault: TrancheVault,
        *,
        base_rate_bps: int = DEFAULT_BASE_RATE_BPS,
        min_rate_bps: int = DEFAULT_MIN_RATE_BPS,
        max_rate_bps: int = DEFAULT_MAX_RATE_BPS,
        protocol_fee_bps: int = DEFAULT_PROTOCOL_FEE_BPS,
        clock: Callable[[], float] = time.time,
        name: str = "distribution-controller",
    ) -> None:
        _validate_rate_bounds(base_rate_bps, min_rate_bps, max_rate_bps)
        _validate_protocol_fee(protocol_fee_bps)
        if not protected_vault.is_protected or leveraged_vault.is_protected:
            raise ConfigurationError("expected (protected, leveraged) vaults in that order")

        self.identity = system_caller(name, Role.CONTROLLER, Role.KEEPER)
        self.protected_vault = protected_vault
        self.leveraged_vault = leveraged_vault
        self.protected_principal = protected_vault.total_principal()
        self.leveraged_principal = leveraged_vault.total_principal()

        self.base_rate_bps = base_rate_bps
        self.min_rate_bps = min_rate_bps
        self.max_rate_bps = max_rate_bps
        self.fixed_rate_bps = base_rate_bps
        self.protocol_fee_bps = protocol_fee_bps

        self.strategy: Any = None
        self.rate_source: Any = None
        self.treasury: Treasury | None = None
        self.safety: "SafetyController | None" = None

        self.initialized = False
        self.emergency_mode = False
        self.harvest_count = 0
        self._clock = clock
        self.last_harvest_time = int(clock())
        self._lock = threading.RLock()

    # --- setup ---

    def initialize(self, strategy: Any, rate_source: Any, treasury: Treasury, *, caller: Caller) -> None:
        """Bind the strategy, rate source and treasury. May only be called once."""
        require_role(caller, Role.ADMIN, "initialize")
        with self._lock:
            if self.initialized:
                raise SequencingError("distribution controller already initialized")
            self.strategy = strategy
            self.rate_source = rate_source
            self.treasury = treasury
            self.last_harvest_time = int(self._clock())
            self.initialized = True
            self.protected_vault.set_fixed_rate(self.fixed_rate_bps, caller=self.identity)
            self._apply_dynamic_rate()

    def attach_safety(self, safety: "SafetyController", *, caller: Caller) -> None:
        """Route deposit pre-checks through ``safety``."""
        require_role(caller, Role.ADMIN, "attach_safety")
        self.safety = safety

    def _require_initialized(self) -> None:
        if not self.initialized:
            raise SequencingError("distribution controller not initialized")

    def _vault(self, is_protected: bool) -> TrancheVault:
        return self.protected_vault if is_protected else self.leveraged_vault

    # --- views ---

    def principals(self) -> tuple[int, int]:
        """(protected, leveraged) principal counters."""
        with self._lock:
            return self.protected_principal, self.leveraged_principal

    def buffer_ratio(self) -> int:
        """Leveraged share of total principal, in bps (0 when empty)."""
        protected, leveraged = self.principals()
        return buffer_ratio(protected, leveraged)

    def leverage(self) -> int:
        """Total over leveraged principal, in bps (0 when undefined)."""
        protected, leveraged = self.principals()
        return leverage(protected, leveraged)

    # --- principal bookkeeping ---

    def register_principal(self, is_protected: bool, amount: int, *, caller: Caller) -> int:
        """Add ``amount`` to a tranche's counter. Returns the resulting fixed rate."""
        require_role(caller, Role.CONTROLLER, "register_principal")
        if amount < 0:
            raise ConfigurationError(f"principal amount must be >= 0 (got {amount})")
        with self._lock:
            if is_protected:
                self.protected_principal += amount
            else:
                self.leveraged_principal += amount
            return self._apply_dynamic_rate()

    def deregister_principal(self, is_protected: bool, amount: int, *, caller: Caller) -> int:
        """Remove up to ``amount`` from a tranche's counter (clamped at 0). Returns the resulting fixed rate."""
        require_role(caller, Role.CONTROLLER, "deregister_principal")
        if amount < 0:
            raise ConfigurationError(f"principal amount must be >= 0 (got {amount})")
        with self._lock:
            if is_protected:
                self.protected_principal -= min(amount, self.protected_principal)
            else:
                self.leveraged_principal -= min(amount, self.leveraged_principal)
            return self._apply_dynamic_rate()

    def _apply_dynamic_rate(self) -> int:
        protected, leveraged = self.protected_principal, self.leveraged_principal
        # No principal at all counts as fully buffered.
        ratio = buffer_ratio(protected, leveraged) if protected + leveraged else TOTAL_BASIS_POINTS
        new_rate = dynamic_rate(
            self.base_rate_bps,
            ratio,
            min_rate_bps=self.min_rate_bps,
            max_rate_bps=self.max_rate_bps,
        )
        if new_rate != self.fixed_rate_bps:
            self.fixed_rate_bps = new_rate
            if self.initialized:
                self.protected_vault.set_fixed_rate(new_rate, caller=self.identity)
        return new_rate

    def _reconcile_principals(self) -> None:
        live = (self.protected_vault.total_principal(), self.leveraged_vault.total_principal())
        cached = (self.protected_principal, self.leveraged_principal)
        if live != cached:
            print(
                f"⚠️  Principal drift: counters={cached}, vaults={live}; using vault figures",
                file=sys.stderr,
            )
            self.protected_principal, self.leveraged_principal = live
            self._apply_dynamic_rate()

    # --- capital flow ---

    def deposit(self, is_protected: bool, amount: int, *, caller: Caller) -> DepositOutcome:
        """
        Deposit on behalf of ``caller`` into one tranche.

        Policy blocks (safety level, pause, ceiling, emergency mode) come back as a rejected
        outcome rather than an exception.
        """
        with self._lock:
            self._require_initialized()
            if self.emergency_mode:
                return DepositOutcome(False, "emergency mode active")
            if self.safety is not None:
                check = self.safety.check_deposit(is_protected, amount)
                if not check.allowed:
                    return DepositOutcome(False, check.reason)
            elif amount <= 0:
                return DepositOutcome(False, "amount must be > 0")

            vault = self._vault(is_protected)
            if vault.preview_deposit(amount) == 0:
                return DepositOutcome(False, f"deposit of {amount} would mint no {vault.name} shares")

            shares = vault.deposit(caller.name, amount, caller=self.identity)
            self.register_principal(is_protected, amount, caller=self.identity)
            self.strategy.deposit(amount)
            return DepositOutcome(True, "", shares)

    def release_capital(self, amount: int, *, caller: Caller) -> int:
        """Recall capital from the strategy to fund a redemption. Returns what was recalled."""
        require_role(caller, Role.CONTROLLER, "release_capital")
        with self._lock:
            self._require_initialized()
            return self.strategy.withdraw(amount)

    # --- harvest ---

    def harvest(self, *, caller: Caller) -> HarvestReport | None:
        """
        Pull profit from the strategy and run it through the waterfall.

        Returns None when no time has elapsed since the last harvest (nothing changes).
        A failing collaborator call aborts the harvest; effects already applied stay applied.
        """
        require_role(caller, Role.KEEPER, "harvest")
        with self._lock:
            self._require_initialized()
            if self.emergency_mode:
                raise EmergencyModeError("harvest blocked: emergency mode active")

            now = int(self._clock())
            elapsed = now - self.last_harvest_time
            if elapsed <= 0:
                return None

            profit = int(self.strategy.harvest())
            self._reconcile_principals()
            protected, leveraged = self.protected_principal, self.leveraged_principal
            rate = self.fixed_rate_bps

            result = distribute(protected, leveraged, rate, self.protocol_fee_bps, elapsed, profit)

            if result.protocol_fee:
                self.treasury.receive(result.protocol_fee, source="protocol-fee")
            slashed = 0
            if result.leveraged_slash:
                slashed = self.leveraged_vault.slash_principal(result.leveraged_slash, caller=self.identity)
            if result.protected_yield:
                self.protected_vault.credit_yield(result.protected_yield, caller=self.identity)
            recovered = 0
            unowned = 0
            if result.leveraged_yield and self.leveraged_vault.total_shares == 0:
                # Nobody holds leveraged shares, so the residual has no owner.
                unowned = result.leveraged_yield
                self.treasury.receive(unowned, source="unowned-leveraged-yield")
                print(
                    f"ℹ️  No leveraged shares outstanding: {unowned} of residual yield sent to treasury",
                    file=sys.stderr,
                )
            elif result.leveraged_yield:
                credited = self.leveraged_vault.credit_yield(result.leveraged_yield, caller=self.identity)
                recovered = result.leveraged_yield - credited

            if not result.protected_fully_paid:
                self.emergency_mode = True
                print(
                    f"🚨 Protected obligation not met at harvest #{self.harvest_count + 1}; emergency mode on",
                    file=sys.stderr,
                )

            self.last_harvest_time = now
            self.harvest_count += 1
            self.leveraged_principal = self.leveraged_vault.total_principal()
            new_rate = self._apply_dynamic_rate()

            return HarvestReport(
                harvest_id=self.harvest_count,
                timestamp=now,
                elapsed_seconds=elapsed,
                profit=profit,
                protected_principal=protected,
                leveraged_principal=leveraged,
                fixed_rate_bps=rate,
                result=result,
                slashed=slashed,
                deficit_recovered=recovered,
                emergency_triggered=not result.protected_fully_paid,
                new_fixed_rate_bps=new_rate,
                unowned_yield=unowned,
            )

    # --- rate management ---

    def sync_rate(self, *, caller: Caller) -> int:
        """Adopt the rate source's target (clamped to bounds) as the base rate. Returns the fixed rate."""
        require_role(caller, Role.KEEPER, "sync_rate")
        with self._lock:
            self._require_initialized()
            target = int(self.rate_source.target_rate())
            if target < 0:
                raise ConfigurationError(f"rate source returned a negative rate: {target}")
            self.base_rate_bps = min(max(target, self.min_rate_bps), self.max_rate_bps)
            return self._apply_dynamic_rate()

    def set_base_rate(self, base_rate_bps: int, *, caller: Caller) -> int:
        """Set the base rate directly. Returns the resulting fixed rate."""
        require_role(caller, Role.ADMIN, "set_base_rate")
        with self._lock:
            _validate_rate_bounds(base_rate_bps, self.min_rate_bps, self.max_rate_bps)
            self.base_rate_bps = base_rate_bps
            return self._apply_dynamic_rate()

    def set_rate_bounds(self, min_rate_bps: int, max_rate_bps: int, *, caller: Caller) -> int:
        """Change the floor and ceiling. The current base rate must fit inside them."""
        require_role(caller, Role.ADMIN, "set_rate_bounds")
        with self._lock:
            _validate_rate_bounds(self.base_rate_bps, min_rate_bps, max_rate_bps)
            self.min_rate_bps = min_rate_bps
            self.max_rate_bps = max_rate_bps
            return self._apply_dynamic_rate()

    def set_protocol_fee(self, protocol_fee_bps: int, *, caller: Caller) -> None:
        """Change the protocol fee taken from profit."""
        require_role(caller, Role.ADMIN, "set_protocol_fee")
        _validate_protocol_fee(protocol_fee_bps)
        with self._lock:
            self.protocol_fee_bps = protocol_fee_bps

    def set_treasury(self, treasury: Treasury, *, caller: Caller) -> None:
        """Redirect protocol fees and emergency sweeps."""
        require_role(caller, Role.ADMIN, "set_treasury")
        with self._lock:
            self.treasury = treasury

    # --- emergency ---

    def emergency_withdraw(self, *, caller: Caller) -> int:
        """Recall everything from the strategy to the treasury and enter emergency mode.

        This is an escape hatch, not an unwind: tranche accounting is left untouched.
        """
        require_role(caller, Role.ADMIN, "emergency_withdraw")
        with self._lock:
            self._require_initialized()
            recalled = self.strategy.withdraw(self.strategy.total_assets())
            self.treasury.receive(recalled, source="emergency-withdraw")
            self.emergency_mode = True
            print(f"🚨 Emergency withdraw: {recalled} swept to {self.treasury.name}", file=sys.stderr)
            return recalled

    def clear_emergency(self, *, caller: Caller) -> None:
        """Leave emergency mode. The harvest clock restarts so the paused window accrues no obligation."""
        require_role(caller, Role.ADMIN, "clear_emergency")
        with self._lock:
            self.emergency_mode = False
            self.last_harvest_time = int(self._clock())
