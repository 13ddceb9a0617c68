"""Baseline-to-worst-post-baseline shift tables.

For each parameter of each measurement dataset, subjects are counted by treatment group, baseline
reference-range category, and worst post-baseline category. "Worst" follows
the configured shift order (default HIGH > LOW > NORMAL), so a subject with
both a high and a low post-baseline value is counted as HIGH. That
convention is configurable and is stated on every table.

Counting is a reduction over independent per-subject results: partial
ShiftCounts can be built over any partition of subjects and merged.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from enum import StrEnum

import pandas as pd
from loguru import logger
from pydantic import BaseModel, Field

from adamforge.derivation.timing import is_post_baseline
from adamforge.models.config import DerivationConfig
from adamforge.models.dataset import StudyDataset
from adamforge.models.measurement import MeasurementRecord, RangeIndicator
from adamforge.models.subject import PopulationFlag, SubjectRecord


class ShiftCategory(StrEnum):
    NORMAL = "NORMAL"
    LOW = "LOW"
    HIGH = "HIGH"
    MISSING = "MISSING"


SHIFT_CATEGORY_ORDER = [
    ShiftCategory.NORMAL,
    ShiftCategory.LOW,
    ShiftCategory.HIGH,
    ShiftCategory.MISSING,
]

ShiftKey = tuple[str, str, str, ShiftCategory, ShiftCategory]


def _category(indicator: RangeIndicator | None) -> ShiftCategory:
    if indicator is None:
        return ShiftCategory.MISSING
    return ShiftCategory(indicator.value)


def worst_indicator(
    indicators: list[RangeIndicator | None],
    config: DerivationConfig,
) -> ShiftCategory:
    """Most abnormal indicator by the configured order; MISSING if none recorded."""
    present = [i for i in indicators if i is not None]
    if not present:
        return ShiftCategory.MISSING
    return _category(min(present, key=config.severity_rank))


class ShiftCounts:
    """Subject counts keyed by (dataset, parameter, treatment, baseline, worst post-baseline)."""

    def __init__(self, counts: Counter[ShiftKey] | None = None) -> None:
        self.counts: Counter[ShiftKey] = counts if counts is not None else Counter()

    def add(
        self,
        dataset_name: str,
        parameter: str,
        treatment: str,
        baseline: ShiftCategory,
        post: ShiftCategory,
    ) -> None:
        self.counts[(dataset_name, parameter, treatment, baseline, post)] += 1

    def merge(self, other: ShiftCounts) -> ShiftCounts:
        """Combine two partial results. Associative and commutative."""
        return ShiftCounts(self.counts + other.counts)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ShiftCounts):
            return NotImplemented
        return self.counts == other.counts


class ShiftTable(BaseModel):
    """Shift counts for a single parameter of one measurement dataset.

    ``counts`` is treatment -> baseline category -> post category -> subjects.
    """

    dataset: str
    parameter_code: str
    parameter: str = ""
    counts: dict[str, dict[str, dict[str, int]]] = Field(default_factory=dict)
    convention: str = Field(default="", description="Worst-case ordering used")

    def count(self, treatment: str, baseline: str, post: str) -> int:
        return self.counts.get(treatment, {}).get(baseline, {}).get(post, 0)

    @property
    def subject_count(self) -> int:
        return sum(
            n
            for by_base in self.counts.values()
            for by_post in by_base.values()
            for n in by_post.values()
        )

    def to_frame(self) -> pd.DataFrame:
        """Cross-tab with (treatment, baseline) rows and post-baseline columns."""
        columns = [c.value for c in SHIFT_CATEGORY_ORDER]
        rows: list[dict[str, object]] = []
        for treatment in sorted(self.counts):
            for baseline in columns:
                by_post = self.counts[treatment].get(baseline)
                if not by_post:
                    continue
                row: dict[str, object] = {"treatment": treatment, "baseline": baseline}
                row.update({post: by_post.get(post, 0) for post in columns})
                rows.append(row)
        frame = pd.DataFrame(rows, columns=["treatment", "baseline", *columns])
        return frame.set_index(["treatment", "baseline"])


class ShiftTableReporter:
    """Builds shift tables from a derived dataset."""

    def __init__(self, config: DerivationConfig) -> None:
        self._config = config

    @property
    def convention(self) -> str:
        return "worst post-baseline by " + " > ".join(r.value for r in self._config.shift_order)

    def count_subject(
        self,
        subject: SubjectRecord,
        records: list[tuple[str, MeasurementRecord]],
    ) -> ShiftCounts:
        """Shift contributions of one subject.

        ``records`` are (dataset name, record) pairs. Each dataset x parameter
        is its own group, matching how baselines are derived.
        """
        result = ShiftCounts()
        treatment = subject.treatment_group(self._config.treatment_basis)

        groups: dict[tuple[str, str], list[MeasurementRecord]] = defaultdict(list)
        for name, record in records:
            if record.parameter_code:
                groups[(name, record.parameter_code)].append(record)

        for (name, param), group in groups.items():
            post = [r for r in group if is_post_baseline(r, subject, self._config)]
            if not post:
                continue
            result.add(
                name,
                param,
                treatment,
                self._baseline_category(group),
                worst_indicator([r.range_indicator for r in post], self._config),
            )
        return result

    @staticmethod
    def _baseline_category(group: list[MeasurementRecord]) -> ShiftCategory:
        for record in group:
            if record.is_baseline:
                return _category(record.range_indicator)
        for record in group:
            if record.baseline_range_indicator is not None:
                return _category(record.baseline_range_indicator)
        return ShiftCategory.MISSING

    def count(
        self,
        dataset: StudyDataset,
        population: PopulationFlag | None = None,
    ) -> ShiftCounts:
        """Fold per-subject counts over the (optionally filtered) subject set."""
        by_subject: dict[str, list[tuple[str, MeasurementRecord]]] = defaultdict(list)
        for name, record in dataset.all_measurements():
            if record.subject_id is not None:
                by_subject[record.subject_id].append((name, record))

        total = ShiftCounts()
        for subject_id, subject in sorted(dataset.subject_index().items()):
            if population is not None and not subject.flag(population):
                continue
            total = total.merge(self.count_subject(subject, by_subject.get(subject_id, [])))
        return total

    def build(
        self,
        dataset: StudyDataset,
        population: PopulationFlag | None = None,
    ) -> list[ShiftTable]:
        """One ShiftTable per dataset x parameter, sorted by dataset then parameter code."""
        totals = self.count(dataset, population)
        labels = {
            (name, r.parameter_code): r.parameter
            for name, r in dataset.all_measurements()
            if r.parameter_code and r.parameter
        }

        nested: dict[tuple[str, str], dict[str, dict[str, dict[str, int]]]] = {}
        for (name, param, treatment, baseline, post), n in totals.counts.items():
            by_treatment = nested.setdefault((name, param), {})
            by_base = by_treatment.setdefault(treatment, {})
            by_base.setdefault(baseline.value, {})[post.value] = n

        tables = [
            ShiftTable(
                dataset=name,
                parameter_code=param,
                parameter=labels.get((name, param), ""),
                counts=nested[(name, param)],
                convention=self.convention,
            )
            for name, param in sorted(nested)
        ]
        logger.info(
            "Built {} shift table(s){}",
            len(tables),
            f" for {population.value} population" if population else "",
        )
        return tables
