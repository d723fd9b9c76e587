"""Epoch-gated withdrawal queue with early-exit penalties."""

import sys
import threading
import time
from collections.abc import Callable

from tranche_economics.constants import (
    DEFAULT_EARLY_WITHDRAW_PENALTY_BPS,
    DEFAULT_EPOCH_DURATION,
    MAX_EARLY_WITHDRAW_PENALTY_BPS,
    MAX_EPOCH_DURATION,
    MIN_EPOCH_DURATION,
)
from tranche_economics.distribution import DistributionController
from tranche_economics.errors import ConfigurationError, InsufficientResourceError, SequencingError
from tranche_economics.ledger import TrancheVault
from tranche_economics.models import (
    EarlyWithdrawResult,
    Epoch,
    EpochSettlement,
    EpochState,
    WithdrawRequest,
)
from tranche_economics.permissions import Caller, Role, require_role, system_caller
from tranche_economics.rate_math import apply_bps


def _validate_epoch_duration(duration: int) -> None:
    if not MIN_EPOCH_DURATION <= duration <= MAX_EPOCH_DURATION:
        raise ConfigurationError(
            f"epoch duration {duration}s outside [{MIN_EPOCH_DURATION}, {MAX_EPOCH_DURATION}]"
        )


def _validate_penalty(penalty_bps: int) -> None:
    if not 0 <= penalty_bps <= MAX_EARLY_WITHDRAW_PENALTY_BPS:
        raise ConfigurationError(
            f"early withdraw penalty {penalty_bps} bps outside [0, {MAX_EARLY_WITHDRAW_PENALTY_BPS}]"
        )


class EpochController:
    """
    Batches withdrawal requests into fixed-length epochs.

    Each epoch moves OPEN → LOCKED → SETTLED. Requests are accepted only while OPEN and are
    settled exactly once, by the settlement of the epoch they were filed in. Early withdrawals
    skip the queue, pay a penalty into a pool, and the pool is shared between both tranches at
    the next settlement.
    """

    def __init__(
        self,
        distribution: DistributionController,
        *,
        epoch_duration: int = DEFAULT_EPOCH_DURATION,
        early_withdraw_penalty_bps: int = DEFAULT_EARLY_WITHDRAW_PENALTY_BPS,
        clock: Callable[[], float] = time.time,
        name: str = "epoch-controller",
    ) -> None:
        _validate_epoch_duration(epoch_duration)
        _validate_penalty(early_withdraw_penalty_bps)
        self.identity = system_caller(name, Role.CONTROLLER, Role.KEEPER)
        self.distribution = distribution
        self.epoch_duration = epoch_duration
        self.early_withdraw_penalty_bps = early_withdraw_penalty_bps
        self.epochs: dict[int, Epoch] = {}
        self.requests: list[WithdrawRequest] = []
        self.settlements: list[EpochSettlement] = []
        self.accumulated_penalties = 0
        self.paid_out: dict[str, int] = {}
        self.current_epoch_id = 0
        self.initialized = False
        self._clock = clock
        self._lock = threading.RLock()

    def initialize(self, *, caller: Caller) -> Epoch:
        """Open the first epoch. May only be called once."""
        require_role(caller, Role.ADMIN, "initialize")
        with self._lock:
            if self.initialized:
                raise SequencingError("epoch controller already initialized")
            self.initialized = True
            return self._open_epoch(0)

    def _open_epoch(self, epoch_id: int) -> Epoch:
        now = int(self._clock())
        epoch = Epoch(id=epoch_id, start_time=now, end_time=now + self.epoch_duration)
        self.epochs[epoch_id] = epoch
        self.current_epoch_id = epoch_id
        return epoch

    def _require_initialized(self) -> None:
        if not self.initialized:
            raise SequencingError("epoch controller not initialized")

    def _vault(self, is_protected: bool) -> TrancheVault:
        return self.distribution.protected_vault if is_protected else self.distribution.leveraged_vault

    @property
    def current_epoch(self) -> Epoch:
        """The most recently created epoch."""
        self._require_initialized()
        return self.epochs[self.current_epoch_id]

    def time_until_epoch_end(self) -> int:
        """Seconds until the current epoch may be processed (0 if already due)."""
        return max(self.current_epoch.end_time - int(self._clock()), 0)

    def pending_requests(self, epoch_id: int | None = None) -> list[WithdrawRequest]:
        """Unprocessed requests, optionally restricted to one epoch."""
        with self._lock:
            return [
                r for r in self.requests if not r.processed and (epoch_id is None or r.epoch_id == epoch_id)
            ]

    # --- queue ---

    def request_withdraw(self, is_protected: bool, share_amount: int, *, caller: Caller) -> WithdrawRequest:
        """Queue a redemption of ``share_amount`` shares for the current epoch."""
        with self._lock:
            epoch = self.current_epoch
            if epoch.state != EpochState.OPEN:
                raise SequencingError(f"epoch {epoch.id} is {epoch.state.value}, not accepting requests")
            if share_amount <= 0:
                raise InsufficientResourceError("share amount must be > 0")
            held = self._vault(is_protected).balance_of(caller.name)
            if held < share_amount:
                raise InsufficientResourceError(f"{caller.name} holds {held} shares, requested {share_amount}")

            request = WithdrawRequest(
                user=caller.name,
                is_protected=is_protected,
                share_amount=share_amount,
                epoch_id=epoch.id,
            )
            self.requests.append(request)
            epoch.total_withdraw_requests += share_amount
            return request

    def lock_epoch(self, epoch_id: int, *, caller: Caller) -> Epoch:
        """Stop accepting requests for ``epoch_id``."""
        require_role(caller, Role.KEEPER, "lock_epoch")
        with self._lock:
            epoch = self._get_epoch(epoch_id)
            if epoch.state != EpochState.OPEN:
                raise SequencingError(f"cannot lock epoch {epoch_id}: state is {epoch.state.value}")
            epoch.state = EpochState.LOCKED
            return epoch

    def settle_epoch(self, epoch_id: int, *, caller: Caller) -> EpochSettlement:
        """
        Settle a locked epoch: harvest, redeem its queued requests, share out penalties, open the next epoch.

        Each request redeems the lesser of what was requested and what the user still holds.
        If the distribution controller is in emergency mode the harvest is skipped; the queue is
        still paid out.
        """
        require_role(caller, Role.KEEPER, "settle_epoch")
        with self._lock:
            epoch = self._get_epoch(epoch_id)
            if epoch.state != EpochState.LOCKED:
                raise SequencingError(f"cannot settle epoch {epoch_id}: state is {epoch.state.value}")
            if not self.distribution.initialized:
                raise SequencingError("distribution controller not initialized")

            harvest = None
            if self.distribution.emergency_mode:
                print(f"⚠️  Epoch {epoch_id}: emergency mode active, settling without harvest", file=sys.stderr)
            else:
                harvest = self.distribution.harvest(caller=self.identity)

            processed = 0
            shares_redeemed = 0
            amount_paid = 0
            shortfall = 0
            for request in self.requests:
                if request.processed or request.epoch_id != epoch_id:
                    continue
                vault = self._vault(request.is_protected)
                shares = min(request.share_amount, vault.balance_of(request.user))
                amount = 0
                if shares > 0:
                    amount = self._redeem(request.is_protected, shares, owner=request.user, recipient=request.user)
                    recalled = self.distribution.release_capital(amount, caller=self.identity)
                    shortfall += amount - recalled
                request.processed = True
                request.shares_redeemed = shares
                request.amount_paid = amount
                processed += 1
                shares_redeemed += shares
                amount_paid += amount

            if shortfall:
                print(
                    f"⚠️  Epoch {epoch_id}: strategy returned {amount_paid - shortfall} of {amount_paid} paid out",
                    file=sys.stderr,
                )

            to_protected, to_leveraged, deferred = self._distribute_penalties()

            epoch.state = EpochState.SETTLED
            next_epoch = self._open_epoch(epoch_id + 1)

            settlement = EpochSettlement(
                epoch_id=epoch_id,
                harvest=harvest,
                requests_processed=processed,
                shares_redeemed=shares_redeemed,
                amount_paid=amount_paid,
                penalty_to_protected=to_protected,
                penalty_to_leveraged=to_leveraged,
                penalty_deferred=deferred,
                next_epoch_id=next_epoch.id,
                capital_shortfall=shortfall,
            )
            self.settlements.append(settlement)
            return settlement

    def process_epoch(self, *, caller: Caller) -> EpochSettlement:
        """Lock (if still open) and settle the current epoch once its end time has passed."""
        require_role(caller, Role.KEEPER, "process_epoch")
        with self._lock:
            epoch = self.current_epoch
            now = int(self._clock())
            if now < epoch.end_time:
                raise SequencingError(f"epoch {epoch.id} ends at {epoch.end_time}, now {now}")
            if epoch.state == EpochState.OPEN:
                self.lock_epoch(epoch.id, caller=caller)
            return self.settle_epoch(epoch.id, caller=caller)

    def _get_epoch(self, epoch_id: int) -> Epoch:
        self._require_initialized()
        epoch = self.epochs.get(epoch_id)
        if epoch is None:
            raise SequencingError(f"unknown epoch {epoch_id}")
        return epoch

    def _redeem(self, is_protected: bool, shares: int, *, owner: str, recipient: str) -> int:
        vault = self._vault(is_protected)
        before = vault.total_principal()
        amount = vault.redeem(shares, recipient, owner, caller=self.identity)
        self.distribution.deregister_principal(
            is_protected, before - vault.total_principal(), caller=self.identity
        )
        return amount

    def _distribute_penalties(self) -> tuple[int, int, int]:
        pool = self.accumulated_penalties
        if pool == 0:
            return 0, 0, 0

        protected_vault = self.distribution.protected_vault
        leveraged_vault = self.distribution.leveraged_vault
        protected_size = protected_vault.total_assets()
        total = protected_size + leveraged_vault.total_assets()
        if total == 0:
            print(f"ℹ️  Penalty pool of {pool} deferred: both tranches are empty", file=sys.stderr)
            return 0, 0, pool

        to_protected = (pool * protected_size) // total
        to_leveraged = pool - to_protected
        if to_protected:
            protected_vault.credit_yield(to_protected, caller=self.identity)
        if to_leveraged:
            leveraged_vault.credit_yield(to_leveraged, caller=self.identity)
        self.accumulated_penalties = 0
        return to_protected, to_leveraged, 0

    # --- early exit ---

    def early_withdraw(self, is_protected: bool, share_amount: int, *, caller: Caller) -> EarlyWithdrawResult:
        """Redeem immediately, whatever the epoch state, minus the early withdraw penalty."""
        with self._lock:
            if not self.distribution.initialized:
                raise SequencingError("distribution controller not initialized")
            if share_amount <= 0:
                raise InsufficientResourceError("share amount must be > 0")
            held = self._vault(is_protected).balance_of(caller.name)
            if held < share_amount:
                raise InsufficientResourceError(f"{caller.name} holds {held} shares, requested {share_amount}")

            gross = self._redeem(is_protected, share_amount, owner=caller.name, recipient=self.identity.name)
            penalty = apply_bps(gross, self.early_withdraw_penalty_bps)
            net = gross - penalty
            self.accumulated_penalties += penalty
            self.paid_out[caller.name] = self.paid_out.get(caller.name, 0) + net
            recalled = self.distribution.release_capital(net, caller=self.identity)
            if recalled < net:
                print(f"⚠️  Early withdraw by {caller.name}: strategy returned {recalled} of {net}", file=sys.stderr)

            return EarlyWithdrawResult(
                user=caller.name,
                is_protected=is_protected,
                shares=share_amount,
                gross_amount=gross,
                penalty=penalty,
                net_amount=net,
                capital_shortfall=net - recalled,
            )

    # --- admin ---

    def set_epoch_duration(self, duration: int, *, caller: Caller) -> None:
        """Duration applied to epochs opened from now on."""
        require_role(caller, Role.ADMIN, "set_epoch_duration")
        _validate_epoch_duration(duration)
        self.epoch_duration = duration

    def set_early_withdraw_penalty(self, penalty_bps: int, *, caller: Caller) -> None:
        """Change the early withdraw penalty."""
        require_role(caller, Role.ADMIN, "set_early_withdraw_penalty")
        _validate_penalty(penalty_bps)
        self.early_withdraw_penalty_bps = penalty_bps
