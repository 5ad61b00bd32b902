"""Domain models for the CSV -> case management import tool.

This package contains the model classes shared by the ingest, validation,
correction and submission services.
"""

from .config_models import ApiConfig, ImportConfig, IngestConfig
from .csv_row import CANONICAL_FIELDS, Category, CsvRow, Priority
from .error_record import ErrorRecord
from .processing_result import BatchStatsAccumulator, ImportSummary
from .submission import (
    BatchResult,
    CasePayload,
    ImportStatus,
    SubmissionProgress,
    SubmissionState,
)
from .validation_error import FieldValidationError

__all__ = [
    # Configuration models
    "ApiConfig",
    "ImportConfig",
    "IngestConfig",
    # Row models
    "CANONICAL_FIELDS",
    "Category",
    "CsvRow",
    "Priority",
    "FieldValidationError",
    # Submission models
    "BatchResult",
    "CasePayload",
    "ImportStatus",
    "SubmissionProgress",
    "SubmissionState",
    # Run results
    "BatchStatsAccumulator",
    "ErrorRecord",
    "ImportSummary",
]
