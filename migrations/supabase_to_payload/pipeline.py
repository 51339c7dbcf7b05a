"""
End-to-end pipeline runner.

Runs export, transform, import and validation in order against one working
directory, timing every step, and writes ``pipeline_report.json``. Import is
a dry run unless a live import is requested; validation needs a live import
and is skipped otherwise.
"""

import logging
import platform
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable

from migrations.supabase_to_payload.artifacts import ensure_directory, save_json, utc_timestamp
from migrations.supabase_to_payload.exporter import SupabaseExporter
from migrations.supabase_to_payload.importer import DEFAULT_BATCH_SIZE, PayloadImporter
from migrations.supabase_to_payload.migration_verifier import DEFAULT_SAMPLE_SIZE, MigrationVerifier
from migrations.supabase_to_payload.stats import StepResult
from migrations.supabase_to_payload.stores import DestinationStore, SourceStore
from migrations.supabase_to_payload.transformer import DataTransformer

logger = logging.getLogger(__name__)

PIPELINE_REPORT_FILE = "pipeline_report.json"

# A step returns (success, records processed)
StepRunner = Callable[[], Awaitable[tuple[bool, int]]]


class MigrationPipeline:
    def __init__(
        self,
        source: SourceStore,
        destination: DestinationStore | None,
        export_dir: Path,
        output_dir: Path | None = None,
        *,
        live_import: bool = False,
        batch_size: int = DEFAULT_BATCH_SIZE,
        upsert: bool = True,
        sample_size: int = DEFAULT_SAMPLE_SIZE,
        now: datetime | None = None,
        environment: dict[str, Any] | None = None,
    ):
        self.source = source
        self.destination = destination
        self.export_dir = Path(export_dir)
        self.output_dir = Path(output_dir) if output_dir else self.export_dir / "transformed"
        self.live_import = live_import
        self.batch_size = batch_size
        self.upsert = upsert
        self.sample_size = sample_size
        self.now = now
        self.environment = environment or {}

    async def run_export(self) -> tuple[bool, int]:
        exporter = SupabaseExporter(self.source, self.export_dir, environment=self.environment)
        summary = await exporter.export_all_data()
        return summary["failed_exports"] == 0, summary["total_records"]

    async def run_transform(self) -> tuple[bool, int]:
        transformer = DataTransformer(self.export_dir, self.output_dir, now=self.now, environment=self.environment)
        summary = transformer.transform_all_data()
        return summary["failed_transformations"] == 0, summary["total_transformed_records"]

    async def run_import(self) -> tuple[bool, int]:
        importer = PayloadImporter(
            self.destination,
            self.output_dir,
            batch_size=self.batch_size,
            dry_run=not self.live_import,
            upsert=self.upsert,
            environment=self.environment,
        )
        summary = await importer.import_all_data()
        return summary["failed_collections"] == 0, summary["successful_imports"]

    async def run_validation(self) -> tuple[bool, int]:
        verifier = MigrationVerifier(
            self.destination,
            self.export_dir,
            self.output_dir,
            sample_size=self.sample_size,
            environment=self.environment,
        )
        summary, _ = await verifier.verify_migration()
        return summary.overall_success, summary.total_payload_records

    async def run_step(self, step: str, runner: StepRunner) -> StepResult:
        logger.info(f"🧪 Running {step} step...")
        started = time.perf_counter()
        try:
            success, records = await runner()
        except Exception as e:
            logger.exception(f"❌ {step} step failed: {e}")
            return StepResult(step=step, success=False, duration=time.perf_counter() - started, error=str(e))

        result = StepResult(
            step=step, success=success, duration=time.perf_counter() - started, records_processed=records
        )
        status = "✅" if success else "❌"
        logger.info(f"{status} {step} step finished: {records} records in {result.duration:.2f}s")
        return result

    async def run(self) -> dict[str, Any]:
        """Run every step and return the pipeline report.

        A step that raises stops the pipeline, since later steps read its
        output; a step that completes with findings does not.
        """
        logger.info(f"🚀 Starting migration pipeline ({'LIVE' if self.live_import else 'DRY RUN'} import)...")
        ensure_directory(self.export_dir)

        steps: list[tuple[str, StepRunner]] = [
            ("export", self.run_export),
            ("transform", self.run_transform),
            ("import", self.run_import),
        ]
        if self.live_import:
            steps.append(("validate", self.run_validation))
        else:
            logger.info("ℹ️  Validation skipped: import runs as a dry run")

        results = []
        for step, runner in steps:
            result = await self.run_step(step, runner)
            results.append(result)
            if result.error:
                logger.error(f"🛑 Stopping pipeline after {step} step error")
                break

        return self.generate_report(results, planned_steps=len(steps))

    def generate_report(self, results: list[StepResult], planned_steps: int) -> dict[str, Any]:
        report = {
            "run_date": utc_timestamp(),
            "mode": "live" if self.live_import else "dry-run",
            "total_steps": planned_steps,
            "completed_steps": len(results),
            "successful_steps": sum(1 for r in results if r.success),
            "total_duration": round(sum(r.duration for r in results), 3),
            "total_records_processed": sum(r.records_processed for r in results),
            "overall_success": len(results) == planned_steps and all(r.success for r in results),
            "steps": [r.to_dict() for r in results],
            "environment": {
                **self.environment,
                "export_directory": str(self.export_dir),
                "output_directory": str(self.output_dir),
                "python_version": platform.python_version(),
            },
        }
        report_path = save_json(self.export_dir / PIPELINE_REPORT_FILE, report)

        logger.info("📊 Pipeline Report:")
        logger.info(f"   Mode: {report['mode']}")
        logger.info(f"   Steps: {report['successful_steps']}/{report['total_steps']} successful")
        logger.info(f"   Total duration: {report['total_duration']:.2f}s")
        logger.info(f"   Records processed: {report['total_records_processed']}")
        logger.info(f"   Overall success: {'✅ YES' if report['overall_success'] else '❌ NO'}")
        for result in results:
            status = "✅" if result.success else "❌"
            logger.info(f"   {status} {result.step}: {result.records_processed} records in {result.duration:.2f}s")
            if result.error:
                logger.info(f"      Error: {result.error}")
        logger.info(f"📄 Detailed report saved to: {report_path}")
        return report
