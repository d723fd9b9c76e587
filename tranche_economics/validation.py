"""Validation logic for configuration, waterfall results and controller state."""

from collections.abc import Sequence
from typing import TYPE_CHECKING

from tranche_economics.constants import TOTAL_BASIS_POINTS
from tranche_economics.errors import ConfigurationError
from tranche_economics.models import DistributionResult, LevelPolicy, SafetyLevel

if TYPE_CHECKING:
    from tranche_economics.distribution import DistributionController  # pragma: no cover


def _report(issues: list[str], msg: str, warn_only: bool) -> None:
    issues.append(msg)
    if not warn_only:
        raise ConfigurationError(msg)


def validate_thresholds(thresholds: Sequence[int], *, warn_only: bool = True) -> list[str]:
    """
    Validate the four classification thresholds (HEALTHY, CAUTION, WARNING, DANGER).

    They must lie in [0, 10000] and be strictly descending.
    """
    issues: list[str] = []
    expected = len(SafetyLevel) - 1
    if len(thresholds) != expected:
        _report(issues, f"expected {expected} thresholds, got {len(thresholds)}", warn_only)
        return issues

    for t in thresholds:
        if not 0 <= t <= TOTAL_BASIS_POINTS:
            _report(issues, f"threshold out of range: {t} bps", warn_only)

    for higher, lower in zip(thresholds, thresholds[1:]):
        if higher <= lower:
            _report(issues, f"thresholds must be strictly descending: {higher} <= {lower}", warn_only)

    return issues


def validate_level_policies(policies: Sequence[LevelPolicy], *, warn_only: bool = True) -> list[str]:
    """Validate a full five-level policy set."""
    issues: list[str] = []
    if len(policies) != len(SafetyLevel):
        _report(issues, f"expected {len(SafetyLevel)} level policies, got {len(policies)}", warn_only)
        return issues

    issues.extend(
        validate_thresholds([p.min_buffer_ratio_bps for p in policies[: len(SafetyLevel) - 1]], warn_only=warn_only)
    )

    for level, p in zip(SafetyLevel, policies):
        if not 0 <= p.min_buffer_ratio_bps <= TOTAL_BASIS_POINTS:
            _report(issues, f"{level.name}: min buffer ratio out of range: {p.min_buffer_ratio_bps}", warn_only)
        if p.max_protected_deposit < 0:
            _report(issues, f"{level.name}: negative deposit ceiling: {p.max_protected_deposit}", warn_only)
        if not 0 <= p.target_protected_rate_bps <= TOTAL_BASIS_POINTS:
            _report(issues, f"{level.name}: target rate out of range: {p.target_protected_rate_bps}", warn_only)

    critical = policies[SafetyLevel.CRITICAL]
    danger = policies[SafetyLevel.DANGER]
    if critical.min_buffer_ratio_bps > danger.min_buffer_ratio_bps:
        _report(
            issues,
            f"CRITICAL min buffer ratio {critical.min_buffer_ratio_bps} exceeds DANGER {danger.min_buffer_ratio_bps}",
            warn_only,
        )

    return issues


def validate_distribution(
    result: DistributionResult,
    *,
    leveraged_principal: int,
    signed_profit: int,
    warn_only: bool = True,
) -> list[str]:
    """
    Check waterfall invariants on a result.

    Returns list of issues. If warn_only=False, raises on the first one.
    """
    issues: list[str] = []

    for name in ("protocol_fee", "protected_yield", "leveraged_yield", "leveraged_slash"):
        value = getattr(result, name)
        if value < 0:
            _report(issues, f"negative {name}: {value}", warn_only)

    if result.leveraged_slash > leveraged_principal:
        _report(
            issues,
            f"slash {result.leveraged_slash} exceeds leveraged principal {leveraged_principal}",
            warn_only,
        )

    if signed_profit > 0 and result.leveraged_slash == 0:
        paid = result.protocol_fee + result.protected_yield + result.leveraged_yield
        if paid > signed_profit:
            _report(issues, f"distributed {paid} exceeds profit {signed_profit}", warn_only)

    if result.leveraged_yield > 0 and (result.leveraged_slash > 0 or not result.protected_fully_paid):
        _report(issues, "leveraged tranche received yield while the protected obligation was short", warn_only)

    return issues


def validate_controller_state(controller: "DistributionController", *, warn_only: bool = True) -> list[str]:
    """Check that cached counters agree with the tranche vaults and the rate is in bounds."""
    issues: list[str] = []

    live_protected = controller.protected_vault.total_principal()
    live_leveraged = controller.leveraged_vault.total_principal()
    if controller.protected_principal != live_protected:
        _report(
            issues,
            f"protected principal drift: controller={controller.protected_principal}, vault={live_protected}",
            warn_only,
        )
    if controller.leveraged_principal != live_leveraged:
        _report(
            issues,
            f"leveraged principal drift: controller={controller.leveraged_principal}, vault={live_leveraged}",
            warn_only,
        )

    if not controller.min_rate_bps <= controller.fixed_rate_bps <= controller.max_rate_bps:
        _report(
            issues,
            f"fixed rate {controller.fixed_rate_bps} outside [{controller.min_rate_bps}, {controller.max_rate_bps}]",
            warn_only,
        )

    if controller.initialized and controller.protected_vault.fixed_rate_bps != controller.fixed_rate_bps:
        _report(
            issues,
            f"protected vault rate {controller.protected_vault.fixed_rate_bps} != "
            f"controller rate {controller.fixed_rate_bps}",
            warn_only,
        )

    return issues
