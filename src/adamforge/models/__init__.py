"""Pydantic data models shared across all adamforge components.

All models are re-exported here for convenient imports:
    from adamforge.models import SubjectRecord, MeasurementRecord, StudyDataset
"""

from adamforge.models.config import BaselineRule, DerivationConfig, load_config
from adamforge.models.dataset import StudyDataset
from adamforge.models.measurement import (
    MeasurementRecord,
    PercentChangeStatus,
    RangeIndicator,
)
from adamforge.models.subject import PopulationFlag, SubjectRecord
from adamforge.models.values import (
    AnalysisValue,
    DateValue,
    MissingValue,
    NumericValue,
    TextValue,
    is_missing,
    numeric_or_none,
)

__all__ = [
    # config
    "BaselineRule",
    "DerivationConfig",
    "load_config",
    # dataset
    "StudyDataset",
    # measurement
    "MeasurementRecord",
    "PercentChangeStatus",
    "RangeIndicator",
    # subject
    "PopulationFlag",
    "SubjectRecord",
    # values
    "AnalysisValue",
    "NumericValue",
    "TextValue",
    "DateValue",
    "MissingValue",
    "numeric_or_none",
    "is_missing",
]
