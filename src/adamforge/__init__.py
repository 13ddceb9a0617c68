"""adamforge: ADaM derivation and cross-dataset validation for clinical trial data."""

__version__ = "0.1.0"
