"""
Migration verifier for the Supabase to Payload migration.

Compares three independent views of every collection: the original export,
the transformed documents and the live Payload collection. Findings are
split into critical issues, which fail the validation, and warnings.
"""

import json
import logging
import platform
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from migrations.supabase_to_payload.artifacts import collection_path, load_json_array_or_empty, save_json, utc_timestamp
from migrations.supabase_to_payload.exceptions import DestinationStoreError
from migrations.supabase_to_payload.importer import IMPORT_SUMMARY_FILE
from migrations.supabase_to_payload.stats import ValidationResult, ValidationSummary
from migrations.supabase_to_payload.stores import DestinationStore

logger = logging.getLogger(__name__)

VALIDATION_REPORT_FILE = "validation_report.json"
DEFAULT_SAMPLE_SIZE = 10

KEY_FIELDS = ["email", "title", "name", "status", "createdAt"]
# A mismatch on one of these fields means the wrong record was written
IDENTITY_FIELDS = {"id", "email", "createdAt"}


@dataclass(frozen=True)
class CollectionCheck:
    name: str
    original_files: tuple[str, ...]
    # (field, holds a list of references)
    relationships: tuple[tuple[str, bool], ...] = ()


COLLECTION_CHECKS = [
    CollectionCheck("users", ("auth_users",)),
    CollectionCheck("clients", ("client_profiles",), (("user", False),)),
    CollectionCheck("trips", ("trips",), (("client", False), ("createdBy", False), ("travelers", True))),
    CollectionCheck("userPreferences", ("user_preferences",), (("user", False),)),
    CollectionCheck("media", ("storage_files", "trip_documents")),
]


def is_reference(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


class MigrationVerifier:
    """Validates a finished import against the export and transform outputs"""

    def __init__(
        self,
        destination: DestinationStore,
        export_dir: Path,
        transformed_dir: Path,
        sample_size: int = DEFAULT_SAMPLE_SIZE,
        environment: dict[str, Any] | None = None,
    ):
        self.destination = destination
        self.export_dir = Path(export_dir)
        self.transformed_dir = Path(transformed_dir)
        self.sample_size = sample_size
        self.environment = environment or {}
        # collection -> (records read by the importer, records it filtered out)
        self.import_filtered: dict[str, tuple[int, int]] = {}

    def load_import_filtered(self) -> dict[str, tuple[int, int]]:
        """Read per-collection filtered counts from the importer's summary, if there is one"""
        path = self.transformed_dir / IMPORT_SUMMARY_FILE
        if not path.exists():
            return {}
        try:
            summary = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"⚠️  Could not read {IMPORT_SUMMARY_FILE}, filtered records are not accounted for: {e}")
            return {}
        results = summary.get("results", []) if isinstance(summary, dict) else []
        return {
            r["collection"]: (r.get("totalRecords", 0), r.get("filteredRecords", 0))
            for r in results
            if isinstance(r, dict) and r.get("collection")
        }

    def _load(self, directory: Path, name: str, result: ValidationResult) -> list[dict[str, Any]]:
        try:
            return load_json_array_or_empty(collection_path(directory, name))
        except (OSError, ValueError) as e:
            result.add_integrity_issue(f"Could not read {name}.json: {e}", critical=True)
            return []

    async def verify_collection(self, check: CollectionCheck) -> ValidationResult:
        logger.info(f"🔍 Validating {check.name}...")
        result = ValidationResult(collection=check.name)

        original_count = 0
        for name in check.original_files:
            original_count += len(self._load(self.export_dir, name, result))
        transformed = self._load(self.transformed_dir, check.name, result)
        result.original_count = original_count
        result.transformed_count = len(transformed)

        if result.transformed_count != result.original_count:
            result.add_integrity_issue(
                f"Transformation count mismatch: {result.original_count} original "
                f"vs {result.transformed_count} transformed",
                critical=True,
            )

        try:
            live = await self.destination.find_all(check.name)
        except DestinationStoreError as e:
            result.fetch_error = f"Failed to fetch {check.name} from Payload: {e}"
            logger.error(f"❌ {result.fetch_error}")
            return result

        total_imported, filtered = self.import_filtered.get(check.name, (0, 0))
        # Only trusted when the summary describes the same transformed file
        if filtered and total_imported == result.transformed_count:
            result.filtered_records = filtered
            logger.info(f"ℹ️  {filtered} {check.name} records were filtered during import")

        expected = result.transformed_count - result.filtered_records
        result.payload_count = len(live)
        result.missing_records = max(0, expected - result.payload_count)
        result.extra_records = max(0, result.payload_count - expected)

        if live and transformed:
            self.check_sample(transformed, live, result)
        self.check_relationships(check, live, result)

        if result.success:
            logger.info(f"✅ {check.name} validation passed")
        else:
            issue_count = len(result.data_integrity_issues) + len(result.relationship_issues)
            logger.info(f"❌ {check.name} validation failed with {issue_count} issues")
        return result

    def check_sample(self, transformed: list[dict], live: list[dict], result: ValidationResult):
        """Spot-check key fields of the first live records against the transformed ones"""
        transformed_by_id = {str(record.get("id")): record for record in transformed}
        for live_record in live[: self.sample_size]:
            record_id = str(live_record.get("id"))
            expected = transformed_by_id.get(record_id)
            if expected is None:
                result.add_integrity_issue(
                    f"Record {record_id} exists in Payload but not in transformed data", critical=True
                )
                continue

            for field_name in KEY_FIELDS:
                if field_name not in expected or field_name not in live_record:
                    continue
                if expected[field_name] != live_record[field_name]:
                    result.add_integrity_issue(
                        f"Field mismatch for record {record_id}: {field_name} "
                        f"({expected[field_name]} vs {live_record[field_name]})",
                        critical=field_name in IDENTITY_FIELDS,
                    )

    @staticmethod
    def check_relationships(check: CollectionCheck, live: list[dict], result: ValidationResult):
        for field_name, is_list in check.relationships:
            if is_list:
                invalid = [
                    record
                    for record in live
                    if record.get(field_name)
                    and (
                        not isinstance(record[field_name], list)
                        or not all(is_reference(value) for value in record[field_name])
                    )
                ]
            else:
                invalid = [record for record in live if not is_reference(record.get(field_name))]

            if invalid:
                sample_ids = ", ".join(str(record.get("id")) for record in invalid[:5])
                result.relationship_issues.append(
                    f"{len(invalid)} {check.name} have invalid {field_name} relationships (e.g. {sample_ids})"
                )

    async def verify_migration(self) -> tuple[ValidationSummary, list[ValidationResult]]:
        logger.info("🚀 Starting migration validation...")
        self.import_filtered = self.load_import_filtered()
        results = [await self.verify_collection(check) for check in COLLECTION_CHECKS]
        summary = self.summarize(results)
        self.save_report(summary, results)
        self._log_verification_results(summary)
        return summary, results

    @staticmethod
    def summarize(results: list[ValidationResult]) -> ValidationSummary:
        summary = ValidationSummary(
            total_collections=len(results),
            passed_validations=sum(1 for r in results if r.success),
            failed_validations=sum(1 for r in results if not r.success),
            total_original_records=sum(r.original_count for r in results),
            total_payload_records=sum(r.payload_count for r in results),
        )

        for result in results:
            if result.fetch_error:
                summary.critical_issues.append(f"{result.collection}: {result.fetch_error}")
            if result.missing_records:
                summary.critical_issues.append(f"{result.collection}: {result.missing_records} missing records")
            if result.extra_records:
                summary.critical_issues.append(f"{result.collection}: {result.extra_records} extra records")
            for issue in result.critical_integrity_issues:
                summary.critical_issues.append(f"{result.collection}: {issue}")
            for issue in result.relationship_issues:
                summary.critical_issues.append(f"{result.collection}: {issue}")
            for issue in result.warnings:
                summary.warnings.append(f"{result.collection}: {issue}")

        summary.overall_success = not summary.critical_issues and not any(
            r.missing_records or r.extra_records for r in results
        )
        return summary

    def save_report(self, summary: ValidationSummary, results: list[ValidationResult]) -> Path:
        report = {
            "validation_date": utc_timestamp(),
            "summary": summary.to_dict(),
            "results": [r.to_dict() for r in results],
            "environment": {
                **self.environment,
                "export_directory": str(self.export_dir),
                "transformed_directory": str(self.transformed_dir),
                "sample_size": self.sample_size,
                "python_version": platform.python_version(),
            },
        }
        report_path = save_json(self.transformed_dir / VALIDATION_REPORT_FILE, report)
        logger.info(f"📄 Detailed report saved to: {report_path}")
        return report_path

    def _log_verification_results(self, summary: ValidationSummary):
        logger.info("📊 Migration Validation Report:")
        logger.info("=" * 50)
        logger.info("📈 Overview:")
        logger.info(f"   Total collections validated: {summary.total_collections}")
        logger.info(f"   Passed validations: {summary.passed_validations}")
        logger.info(f"   Failed validations: {summary.failed_validations}")
        logger.info(f"   Original records: {summary.total_original_records}")
        logger.info(f"   Payload records: {summary.total_payload_records}")

        if summary.critical_issues:
            logger.info("🚨 Critical Issues:")
            for issue in summary.critical_issues:
                logger.info(f"   - {issue}")

        if summary.warnings:
            logger.info("⚠️  Warnings:")
            for issue in summary.warnings:
                logger.info(f"   - {issue}")

        if summary.overall_success:
            logger.info("✅ Overall Status: MIGRATION SUCCESSFUL")
        else:
            logger.info("❌ Overall Status: MIGRATION FAILED")
            logger.info("   Fix the critical issues above, then re-run import and validation.")
