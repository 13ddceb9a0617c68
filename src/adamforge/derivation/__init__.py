"""ADaM derivations: population flags, baselines, and change from baseline."""

from adamforge.derivation.baseline import (
    BaselineDeriver,
    compute_change,
    compute_percent_change,
    derive_range_indicator,
    select_baseline,
)
from adamforge.derivation.populations import PopulationFlagDeriver, summarize_populations

__all__ = [
    "BaselineDeriver",
    "PopulationFlagDeriver",
    "compute_change",
    "compute_percent_change",
    "derive_range_indicator",
    "select_baseline",
    "summarize_populations",
]
