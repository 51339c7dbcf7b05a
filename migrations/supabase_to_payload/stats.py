"""
Result values and statistics for the Supabase to Payload migration.

Every stage returns these values instead of accumulating them on the stage
object, so a stage can be run many times in the same process (tests, the
pipeline runner) without leaking state between runs.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Error strings kept per record are cut to this many characters
ERROR_EXCERPT_LENGTH = 100


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a single fallible operation: either a value or an error message"""

    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: str | BaseException) -> "Outcome[T]":
        return cls(error=str(error) or error.__class__.__name__)


@dataclass
class ExportResult:
    """Outcome of exporting one source collection"""

    table: str
    count: int = 0
    success: bool = True
    error: str | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"table": self.table, "count": self.count, "success": self.success}
        if self.error:
            data["error"] = self.error
        if self.warnings:
            data["warnings"] = self.warnings
        return data


@dataclass
class TransformationResult:
    """Outcome of transforming one destination collection"""

    collection: str
    original_count: int = 0
    transformed_count: int = 0
    success: bool = True
    error: str | None = None
    integrity_issues: list[str] = field(default_factory=list)
    defaulted_dates: int = 0

    @property
    def count_matches(self) -> bool:
        return self.original_count == self.transformed_count

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "collection": self.collection,
            "originalCount": self.original_count,
            "transformedCount": self.transformed_count,
            "success": self.success,
            "integrityIssues": self.integrity_issues,
            "defaultedDates": self.defaulted_dates,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class ImportResult:
    """Outcome of importing one collection into Payload"""

    collection: str
    total_records: int = 0
    successful_imports: int = 0
    failed_imports: int = 0
    filtered_records: int = 0
    updated_records: int = 0
    batches: int = 0
    errors: list[str] = field(default_factory=list)
    # Set when the collection could not be processed at all (unreadable input)
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.failed_imports == 0 and self.error is None

    def add_error(self, error: str):
        self.errors.append(error)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "collection": self.collection,
            "totalRecords": self.total_records,
            "successfulImports": self.successful_imports,
            "failedImports": self.failed_imports,
            "filteredRecords": self.filtered_records,
            "updatedRecords": self.updated_records,
            "batches": self.batches,
            "errors": self.errors,
            "success": self.success,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class ValidationResult:
    """Findings for one collection after comparing export, transform and Payload"""

    collection: str
    original_count: int = 0
    transformed_count: int = 0
    payload_count: int = 0
    missing_records: int = 0
    extra_records: int = 0
    filtered_records: int = 0
    data_integrity_issues: list[str] = field(default_factory=list)
    relationship_issues: list[str] = field(default_factory=list)
    # Integrity issues that fail the validation; the rest are warnings
    critical_integrity_issues: list[str] = field(default_factory=list)
    fetch_error: str | None = None

    def add_integrity_issue(self, issue: str, critical: bool = False):
        self.data_integrity_issues.append(issue)
        if critical:
            self.critical_integrity_issues.append(issue)

    @property
    def warnings(self) -> list[str]:
        return [issue for issue in self.data_integrity_issues if issue not in self.critical_integrity_issues]

    @property
    def success(self) -> bool:
        return not (
            self.critical_integrity_issues
            or self.relationship_issues
            or self.missing_records
            or self.extra_records
            or self.fetch_error
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "collection": self.collection,
            "originalCount": self.original_count,
            "transformedCount": self.transformed_count,
            "payloadCount": self.payload_count,
            "missingRecords": self.missing_records,
            "extraRecords": self.extra_records,
            "filteredRecords": self.filtered_records,
            "dataIntegrityIssues": self.data_integrity_issues,
            "relationshipIssues": self.relationship_issues,
            "criticalIntegrityIssues": self.critical_integrity_issues,
            "success": self.success,
        }
        if self.fetch_error:
            data["fetchError"] = self.fetch_error
        return data


@dataclass
class ValidationSummary:
    total_collections: int = 0
    passed_validations: int = 0
    failed_validations: int = 0
    total_original_records: int = 0
    total_payload_records: int = 0
    overall_success: bool = False
    critical_issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalCollections": self.total_collections,
            "passedValidations": self.passed_validations,
            "failedValidations": self.failed_validations,
            "totalOriginalRecords": self.total_original_records,
            "totalPayloadRecords": self.total_payload_records,
            "overallSuccess": self.overall_success,
            "criticalIssues": self.critical_issues,
            "warnings": self.warnings,
        }


@dataclass
class StepResult:
    """Outcome of one pipeline step run by the pipeline runner"""

    step: str
    success: bool
    duration: float
    records_processed: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "step": self.step,
            "success": self.success,
            "duration": round(self.duration, 3),
            "recordsProcessed": self.records_processed,
        }
        if self.error:
            data["error"] = self.error
        return data


def record_excerpt(record: dict[str, Any], json_text: str) -> str:
    """Short, loggable identification of a record for error lists"""
    record_id = record.get("id")
    excerpt = json_text[:ERROR_EXCERPT_LENGTH]
    if record_id is not None:
        return f"Record {record_id} ({excerpt}...)"
    return f"Record {excerpt}..."


def log_error_samples(category: str, errors: list[str], limit: int = 5):
    """Log a category of errors showing only the first few"""
    logger.info(f"  {category}: {len(errors):,} errors")
    for error in errors[:limit]:
        logger.info(f"    - {error}")
    if len(errors) > limit:
        logger.info(f"    ... and {len(errors) - limit} more")
