"""In-memory collaborators: tranche vaults, a yield strategy, a rate source and a treasury.

These satisfy the narrow contracts the controllers depend on. Custody is bookkeeping only:
balances are counters, payouts are recorded per recipient.
"""

import time
from collections.abc import Callable

from tranche_economics.constants import SECONDS_PER_YEAR, TOTAL_BASIS_POINTS
from tranche_economics.errors import ConfigurationError, InsufficientResourceError
from tranche_economics.permissions import Caller, Role, require_role


class TrancheVault:
    """Share ledger for one tranche.

    Assets are ``principal + yield_reserve``. Shares are minted and burned in proportion to
    assets (with a one-unit virtual offset so an empty or wiped-out vault still prices shares).
    Slashing draws on the yield reserve before principal; whatever cannot be covered is
    recorded as ``slash_deficit`` and recovered from the next yield credited.
    """

    def __init__(self, name: str, *, is_protected: bool) -> None:
        self.name = name
        self.is_protected = is_protected
        self.principal = 0
        self.yield_reserve = 0
        self.slash_deficit = 0
        self.deficit_recovered_total = 0
        self.total_shares = 0
        self.fixed_rate_bps = 0
        self.paid_out: dict[str, int] = {}
        self._shares: dict[str, int] = {}

    def __repr__(self) -> str:
        return (
            f"TrancheVault({self.name!r}, principal={self.principal}, yield_reserve={self.yield_reserve}, "
            f"shares={self.total_shares}, deficit={self.slash_deficit})"
        )

    # --- views ---

    def total_principal(self) -> int:
        """Principal currently held by the tranche."""
        return self.principal

    def total_assets(self) -> int:
        """Principal plus undistributed yield."""
        return self.principal + self.yield_reserve

    def balance_of(self, user: str) -> int:
        """Shares held by ``user``."""
        return self._shares.get(user, 0)

    def preview_deposit(self, amount: int) -> int:
        """Shares minted for ``amount`` at the current price."""
        return (amount * (self.total_shares + 1)) // (self.total_assets() + 1)

    def preview_redeem(self, shares: int) -> int:
        """Assets paid for ``shares`` at the current price."""
        if shares <= 0:
            return 0
        return (shares * (self.total_assets() + 1)) // (self.total_shares + 1)

    # --- controller-only mutations ---

    def deposit(self, user: str, amount: int, *, caller: Caller) -> int:
        """Add ``amount`` of principal on behalf of ``user`` and mint shares."""
        require_role(caller, Role.CONTROLLER, f"{self.name}.deposit")
        if amount <= 0:
            raise InsufficientResourceError(f"{self.name}: deposit amount must be > 0")
        shares = self.preview_deposit(amount)
        if shares == 0:
            raise InsufficientResourceError(f"{self.name}: deposit of {amount} mints no shares")
        self.principal += amount
        self.total_shares += shares
        self._shares[user] = self._shares.get(user, 0) + shares
        return shares

    def credit_yield(self, amount: int, *, caller: Caller) -> int:
        """Credit yield, recovering any outstanding slash deficit first. Returns the net credited."""
        require_role(caller, Role.CONTROLLER, f"{self.name}.credit_yield")
        if amount < 0:
            raise ConfigurationError(f"{self.name}: yield must be >= 0 (got {amount})")
        recovered = min(amount, self.slash_deficit)
        self.slash_deficit -= recovered
        self.deficit_recovered_total += recovered
        credited = amount - recovered
        self.yield_reserve += credited
        return credited

    def slash_principal(self, amount: int, *, caller: Caller) -> int:
        """Remove up to ``amount``, yield reserve first. Returns what was actually removed."""
        require_role(caller, Role.CONTROLLER, f"{self.name}.slash_principal")
        if amount < 0:
            raise ConfigurationError(f"{self.name}: slash must be >= 0 (got {amount})")
        from_yield = min(amount, self.yield_reserve)
        self.yield_reserve -= from_yield
        remaining = amount - from_yield
        from_principal = min(remaining, self.principal)
        self.principal -= from_principal
        self.slash_deficit += remaining - from_principal
        return from_yield + from_principal

    def set_fixed_rate(self, rate_bps: int, *, caller: Caller) -> None:
        """Record the fixed rate owed to this tranche (protected tranche only)."""
        require_role(caller, Role.CONTROLLER, f"{self.name}.set_fixed_rate")
        if not self.is_protected:
            raise ConfigurationError(f"{self.name}: fixed rate applies to the protected tranche only")
        self.fixed_rate_bps = rate_bps

    def redeem(self, shares: int, recipient: str, owner: str, *, caller: Caller) -> int:
        """Burn ``owner``'s shares and pay ``recipient``. The owner or a controller may redeem."""
        if caller.name != owner:
            require_role(caller, Role.CONTROLLER, f"{self.name}.redeem for {owner}")
        if shares <= 0:
            raise InsufficientResourceError(f"{self.name}: redeem shares must be > 0")
        held = self.balance_of(owner)
        if shares > held:
            raise InsufficientResourceError(f"{self.name}: {owner} holds {held} shares, cannot redeem {shares}")

        amount = self.preview_redeem(shares)
        assets = self.total_assets()
        principal_part = (amount * self.principal) // assets if assets else 0
        yield_part = amount - principal_part
        if yield_part > self.yield_reserve:
            principal_part += yield_part - self.yield_reserve
            yield_part = self.yield_reserve
        self.principal -= principal_part
        self.yield_reserve -= yield_part

        self.total_shares -= shares
        self._shares[owner] = held - shares
        if self._shares[owner] == 0:
            del self._shares[owner]
        self.paid_out[recipient] = self.paid_out.get(recipient, 0) + amount
        return amount


class MockYieldStrategy:
    """Deterministic capital-deployment strategy: APY accrual plus scheduled profit or loss."""

    def __init__(self, apy_bps: int = 0, *, clock: Callable[[], float] = time.time) -> None:
        if apy_bps < 0:
            raise ConfigurationError(f"apy must be >= 0 (got {apy_bps})")
        self.apy_bps = apy_bps
        self.assets = 0
        self._clock = clock
        self._last_harvest = int(clock())
        self._scheduled: list[int] = []

    def total_assets(self) -> int:
        """Capital currently deployed."""
        return self.assets

    def deposit(self, amount: int) -> None:
        """Deploy ``amount``."""
        if amount < 0:
            raise ConfigurationError(f"deposit must be >= 0 (got {amount})")
        self.assets += amount

    def withdraw(self, amount: int) -> int:
        """Recall up to ``amount``. Returns what was actually recalled."""
        actual = min(max(amount, 0), self.assets)
        self.assets -= actual
        return actual

    def schedule_pnl(self, amount: int) -> None:
        """Queue a signed profit (or loss) to be reported by the next harvest."""
        self._scheduled.append(amount)

    def harvest(self) -> int:
        """Realize accrued yield and scheduled events. Returns the signed profit."""
        now = int(self._clock())
        elapsed = max(now - self._last_harvest, 0)
        self._last_harvest = now
        accrued = (self.assets * self.apy_bps * elapsed) // (SECONDS_PER_YEAR * TOTAL_BASIS_POINTS)
        pnl = accrued + sum(self._scheduled)
        self._scheduled.clear()
        self.assets = max(self.assets + pnl, 0)
        return pnl


class StaticRateSource:
    """Rate source returning a configured target rate."""

    def __init__(self, rate_bps: int) -> None:
        self.rate_bps = rate_bps

    def target_rate(self) -> int:
        """Current target rate in bps."""
        return self.rate_bps


class Treasury:
    """Fee sink. Receives plain transfers, no callbacks."""

    def __init__(self, name: str = "treasury") -> None:
        self.name = name
        self.balance = 0
        self.receipts: list[tuple[str, int]] = []

    def receive(self, amount: int, *, source: str) -> None:
        """Record an incoming transfer."""
        if amount < 0:
            raise ConfigurationError(f"transfer must be >= 0 (got {amount})")
        self.balance += amount
        self.receipts.append((source, amount))
