"""Processing layer - Post-separation stem shaping.

Single-pole IIR filters, noise reduction and click repair, selected per
source through a fixed policy table.
"""

from .filters import (
    FilterSettings,
    high_pass,
    low_pass,
    band_pass,
    reduce_noise,
    repair_clicks,
    apply_gain,
    apply_soft_limiter,
)
from .policy import (
    FilterKind,
    FilterPolicy,
    FILTER_POLICIES,
    policy_for,
    validate_sources,
    post_process_stem,
    remove_clicks_pops,
    finish_stem,
)

__all__ = [
    "FilterSettings",
    "high_pass",
    "low_pass",
    "band_pass",
    "reduce_noise",
    "repair_clicks",
    "apply_gain",
    "apply_soft_limiter",
    "FilterKind",
    "FilterPolicy",
    "FILTER_POLICIES",
    "policy_for",
    "validate_sources",
    "post_process_stem",
    "remove_clicks_pops",
    "finish_stem",
]
