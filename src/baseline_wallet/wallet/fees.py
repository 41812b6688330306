"""
Fee-rate policy applied on top of the node's estimatesmartfee result.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

# Node relay floor; anything lower is rejected by Baseline peers
MIN_RELAY_FEE_RATE = 5_000  # liners/kB

# Used when estimatesmartfee returns nothing usable
FALLBACK_FEE_RATE = 5_000  # liners/kB


@dataclass(frozen=True)
class FeePreset:
    key: str
    label: str
    multiplier: Decimal


FEE_PRESETS: dict[str, FeePreset] = {
    p.key: p
    for p in (
        FeePreset("eco", "Eco", Decimal("0.85")),
        FeePreset("standard", "Standard", Decimal("1")),
        FeePreset("fast", "Fast", Decimal("1.3")),
        FeePreset("turbo", "Turbo", Decimal("1.6")),
    )
}

DEFAULT_PRESET = "standard"


@dataclass(frozen=True)
class EffectiveFeeRate:
    rate: int  # liners/kB
    clamped: bool  # raised to the relay floor
    base_rate: int | None  # node estimate, if any
    preset: str | None  # None when a custom rate was used


def effective_fee_rate(
    base_rate: int | None,
    preset: str = DEFAULT_PRESET,
    custom_rate: int | None = None,
) -> EffectiveFeeRate:
    """
    Turn a node estimate (or a user-supplied custom rate) into the rate to
    build with, never below MIN_RELAY_FEE_RATE.
    """
    if custom_rate is not None:
        if custom_rate <= 0:
            raise ValueError(f"Custom fee rate must be positive, got {custom_rate}")
        candidate = custom_rate
        preset_key: str | None = None
    else:
        try:
            chosen = FEE_PRESETS[preset]
        except KeyError as e:
            raise ValueError(f"Unknown fee preset: {preset}") from e
        base = base_rate if base_rate is not None else FALLBACK_FEE_RATE
        scaled = (Decimal(base) * chosen.multiplier).quantize(Decimal(1), rounding=ROUND_HALF_UP)
        candidate = max(1, int(scaled))
        preset_key = chosen.key

    rate = max(MIN_RELAY_FEE_RATE, candidate)
    return EffectiveFeeRate(
        rate=rate, clamped=rate != candidate, base_rate=base_rate, preset=preset_key
    )
