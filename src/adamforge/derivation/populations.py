"""Population flag derivation (ADSL SAFFL / ITTFL / PPROTFL / EFFFL).

Each flag is computed from the subject record and, for efficacy, the
subject's own measurement records. No flag depends on another subject.
Per-protocol implying intent-to-treat is checked by the validator; the
deriver never corrects a flag to satisfy it.
"""

from __future__ import annotations

from loguru import logger

from adamforge.derivation.timing import is_post_baseline
from adamforge.models.config import DerivationConfig
from adamforge.models.dataset import StudyDataset
from adamforge.models.measurement import MeasurementRecord
from adamforge.models.subject import PopulationFlag, SubjectRecord
from adamforge.models.values import is_missing


def derive_safety(subject: SubjectRecord) -> bool:
    """Received at least one dose."""
    return subject.first_dose_date is not None


def derive_intent_to_treat(subject: SubjectRecord) -> bool:
    """Randomized, or assigned to a treatment arm."""
    if subject.randomization_date is not None:
        return True
    return bool(subject.planned_treatment and subject.planned_treatment.strip())


def derive_per_protocol(subject: SubjectRecord, itt: bool, config: DerivationConfig) -> bool:
    """ITT, no major deviation, and compliance at or above the threshold.

    Missing compliance cannot demonstrate adherence, so it excludes the subject.
    """
    if not itt or subject.major_deviation:
        return False
    if subject.compliance is None:
        return False
    return subject.compliance >= config.compliance_threshold


def derive_efficacy(
    subject: SubjectRecord,
    itt: bool,
    records: list[MeasurementRecord],
    config: DerivationConfig,
) -> bool:
    """ITT with at least one non-missing post-baseline efficacy assessment."""
    if not itt:
        return False
    return any(
        config.is_efficacy_parameter(record.parameter_code)
        and not is_missing(record.value)
        and is_post_baseline(record, subject, config)
        for record in records
    )


class PopulationFlagDeriver:
    """Computes the named population flags for every subject in a dataset."""

    def __init__(self, config: DerivationConfig) -> None:
        self._config = config

    def derive_subject(
        self,
        subject: SubjectRecord,
        records: list[MeasurementRecord],
    ) -> dict[str, bool]:
        """Compute all population flags for one subject."""
        itt = derive_intent_to_treat(subject)
        return {
            PopulationFlag.SAFETY.value: derive_safety(subject),
            PopulationFlag.INTENT_TO_TREAT.value: itt,
            PopulationFlag.PER_PROTOCOL.value: derive_per_protocol(subject, itt, self._config),
            PopulationFlag.EFFICACY.value: derive_efficacy(
                subject, itt, records, self._config
            ),
        }

    def derive(self, dataset: StudyDataset) -> StudyDataset:
        """Return a copy of the dataset with population flags set on every subject.

        Measurement records referencing unknown subjects play no part: flags
        are only derived for subjects that exist.
        """
        by_subject = dataset.measurements_by_subject()
        subjects: list[SubjectRecord] = []
        for subject in dataset.subjects:
            records = by_subject.get(subject.subject_id, []) if subject.subject_id else []
            flags = self.derive_subject(subject, records)
            subjects.append(subject.model_copy(update={"flags": flags}))

        counts = summarize_populations(subjects)
        logger.info(
            "Derived population flags for {} subjects: {}",
            len(subjects),
            ", ".join(f"{name}={n}" for name, n in counts.items()),
        )
        return dataset.model_copy(update={"subjects": subjects})


def summarize_populations(subjects: list[SubjectRecord]) -> dict[str, int]:
    """Count subjects in each population, in PopulationFlag order."""
    return {
        flag.value: sum(1 for s in subjects if s.flag(flag))
        for flag in PopulationFlag
    }
