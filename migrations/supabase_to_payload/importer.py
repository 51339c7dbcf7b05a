"""
Payload importer.

Writes the transformer's output into Payload collection by collection, in
dependency order and in fixed-size batches. Every record is written on its
own: a failure is counted and reported, and the import moves on.
"""

import json
import logging
import platform
from pathlib import Path
from typing import Any, Callable

from tqdm.asyncio import tqdm

from db.enums import TripPriority
from migrations.supabase_to_payload.artifacts import collection_path, load_json_array_or_empty, save_json, utc_timestamp
from migrations.supabase_to_payload.exceptions import DestinationStoreError, MigrationConfigError
from migrations.supabase_to_payload.stats import ImportResult, Outcome, log_error_samples, record_excerpt
from migrations.supabase_to_payload.stores import DestinationStore

logger = logging.getLogger(__name__)

IMPORT_SUMMARY_FILE = "import_summary.json"
DEFAULT_BATCH_SIZE = 100
LOGGED_ERRORS_PER_COLLECTION = 5

# Credentials are never migrated; imported users must reset their password
PLACEHOLDER_PASSWORD = "temp-password-needs-reset"

# Never overwritten when an existing document is updated
UPDATE_EXCLUDED_FIELDS = {"id", "password", "passwordResetRequired"}

POST_IMPORT_ACTIONS = [
    "Reset passwords for all imported users",
    "Verify user email addresses",
    "Check file uploads and media references",
    "Validate relationships between collections",
    "Run the validation command to ensure data integrity",
]

Prepared = tuple[list[dict[str, Any]], int]


def batched(records: list[Any], size: int) -> list[list[Any]]:
    return [records[i : i + size] for i in range(0, len(records), size)]


def prepare_users(users: list[dict[str, Any]]) -> Prepared:
    return [{**user, "password": PLACEHOLDER_PASSWORD, "passwordResetRequired": True} for user in users], 0


def prepare_trips(trips: list[dict[str, Any]]) -> Prepared:
    prepared = []
    for trip in trips:
        prepared.append(
            {
                **trip,
                "priority": trip.get("priority") or str(TripPriority.MEDIUM),
                "currency": trip.get("currency") or "USD",
                "itinerary": trip.get("itinerary") or [],
                "documents": trip.get("documents") or [],
            }
        )
    return prepared, 0


def filter_media(media: list[dict[str, Any]]) -> Prepared:
    """Drop media that cannot be uploaded: no URL or no filename"""
    kept = [file for file in media if file.get("url") and file.get("filename")]
    return kept, len(media) - len(kept)


# Collection name, preprocessor; in dependency order
IMPORT_ORDER: list[tuple[str, Callable[[list[dict[str, Any]]], Prepared] | None]] = [
    ("users", prepare_users),
    ("clients", None),
    ("userPreferences", None),
    ("media", filter_media),
    ("trips", prepare_trips),
]


class PayloadImporter:
    """Imports transformed documents into Payload.

    In dry-run mode every record goes through the same preparation, batching
    and counting but no request is sent, so ``successfulImports`` is the
    number of records a live run would write.
    """

    def __init__(
        self,
        destination: DestinationStore | None,
        input_dir: Path,
        batch_size: int = DEFAULT_BATCH_SIZE,
        dry_run: bool = False,
        upsert: bool = True,
        environment: dict[str, Any] | None = None,
    ):
        if batch_size <= 0:
            raise MigrationConfigError(f"Batch size must be positive, got {batch_size}")
        if destination is None and not dry_run:
            raise MigrationConfigError("A Payload destination is required unless running a dry run")
        self.destination = destination
        self.input_dir = Path(input_dir)
        self.batch_size = batch_size
        self.dry_run = dry_run
        self.upsert = upsert
        self.environment = environment or {}

    async def check_destination(self):
        """Fail fast when Payload cannot be reached before any record is written"""
        if self.dry_run or self.destination is None:
            return
        try:
            await self.destination.ping()
        except DestinationStoreError as e:
            raise MigrationConfigError(f"Payload is not reachable: {e}") from e
        logger.info("✅ Payload connection established")

    async def import_record(self, collection: str, record: dict[str, Any]) -> Outcome[str]:
        """Write one record; the outcome value is ``created`` or ``updated``"""
        try:
            record_id = record.get("id")
            if self.upsert and record_id is not None:
                existing = await self.destination.find_by_id(collection, record_id)
                if existing is not None:
                    changes = {k: v for k, v in record.items() if k not in UPDATE_EXCLUDED_FIELDS}
                    await self.destination.update(collection, record_id, changes)
                    return Outcome.success("updated")
            await self.destination.create(collection, record)
            return Outcome.success("created")
        except DestinationStoreError as e:
            return Outcome.failure(e)
        except Exception as e:
            logger.exception(f"💥 Unexpected error importing {collection} {record.get('id')}: {e}")
            return Outcome.failure(f"Unexpected error: {e}")

    async def import_records(self, collection: str, records: list[dict[str, Any]], result: ImportResult):
        batches = batched(records, self.batch_size)
        result.batches = len(batches)
        if self.dry_run:
            logger.info(f"🔍 DRY RUN: Would import {len(records)} records to {collection}")

        with tqdm(total=len(records), desc=f"Importing {collection}", disable=not records) as pbar:
            for number, batch in enumerate(batches, start=1):
                logger.info(f"   Processing batch {number}/{len(batches)} ({len(batch)} records)")
                for record in batch:
                    if self.dry_run:
                        result.successful_imports += 1
                        pbar.update(1)
                        continue

                    outcome = await self.import_record(collection, record)
                    if outcome.ok:
                        result.successful_imports += 1
                        if outcome.value == "updated":
                            result.updated_records += 1
                    else:
                        result.failed_imports += 1
                        text = json.dumps(record, ensure_ascii=False, default=str)
                        result.add_error(f"{record_excerpt(record, text)}: {outcome.error}")
                        if result.failed_imports <= LOGGED_ERRORS_PER_COLLECTION:
                            logger.error(f"❌ Failed to import {collection} {record.get('id')}: {outcome.error}")
                    pbar.update(1)

    async def import_collection(
        self, collection: str, prepare: Callable[[list[dict[str, Any]]], Prepared] | None = None
    ) -> ImportResult:
        logger.info(f"🔄 Importing {collection}...")
        result = ImportResult(collection=collection)

        try:
            records = load_json_array_or_empty(collection_path(self.input_dir, collection))
        except (OSError, ValueError) as e:
            result.error = f"Could not read {collection}.json: {e}"
            result.add_error(result.error)
            logger.error(f"❌ {result.error}")
            return result

        result.total_records = len(records)
        if prepare is not None:
            records, result.filtered_records = prepare(records)
            if result.filtered_records:
                logger.warning(f"⚠️  Filtered {result.filtered_records} {collection} records (no url or filename)")

        if not records:
            logger.info(f"ℹ️  No data to import for {collection}")
            return result

        await self.import_records(collection, records, result)
        logger.info(
            f"✅ {collection}: {result.successful_imports} imported"
            f" ({result.updated_records} updated), {result.failed_imports} failed"
        )
        return result

    async def import_all_data(self) -> dict[str, Any]:
        """Import every collection in dependency order and write the summary"""
        logger.info(f"🚀 Starting Payload import{' (DRY RUN)' if self.dry_run else ''}...")
        await self.check_destination()

        results = []
        for collection, prepare in IMPORT_ORDER:
            results.append(await self.import_collection(collection, prepare))

        summary = self.generate_summary(results)
        logger.info("🎉 Import completed!")
        return summary

    def generate_summary(self, results: list[ImportResult]) -> dict[str, Any]:
        successful_imports = sum(r.successful_imports for r in results)
        summary = {
            "import_date": utc_timestamp(),
            "dry_run": self.dry_run,
            "upsert": self.upsert,
            "total_collections": len(results),
            "successful_collections": sum(1 for r in results if r.success),
            "failed_collections": sum(1 for r in results if not r.success),
            "total_records": sum(r.total_records for r in results),
            "successful_imports": successful_imports,
            "failed_imports": sum(r.failed_imports for r in results),
            "filtered_records": sum(r.filtered_records for r in results),
            "updated_records": sum(r.updated_records for r in results),
            "results": [r.to_dict() for r in results],
            "post_import_actions": POST_IMPORT_ACTIONS if not self.dry_run and successful_imports else [],
            "environment": {
                **self.environment,
                "input_directory": str(self.input_dir),
                "batch_size": self.batch_size,
                "python_version": platform.python_version(),
            },
        }
        summary_path = save_json(self.input_dir / IMPORT_SUMMARY_FILE, summary)

        logger.info("📊 Import Summary:")
        logger.info(f"   Mode: {'DRY RUN' if self.dry_run else 'LIVE IMPORT'}")
        logger.info(f"   Total collections: {summary['total_collections']}")
        logger.info(f"   Successful collections: {summary['successful_collections']}")
        logger.info(f"   Failed collections: {summary['failed_collections']}")
        logger.info(f"   Total records: {summary['total_records']}")
        logger.info(f"   Successful imports: {summary['successful_imports']}")
        logger.info(f"   Failed imports: {summary['failed_imports']}")
        logger.info(f"   Filtered records: {summary['filtered_records']}")
        logger.info(f"   Summary saved to: {summary_path}")

        failed = [r for r in results if not r.success]
        if failed:
            logger.info("❌ Failed collections:")
            for result in failed:
                log_error_samples(result.collection, result.errors, limit=LOGGED_ERRORS_PER_COLLECTION)

        if summary["post_import_actions"]:
            logger.info("🔐 Post-Import Actions Required:")
            for number, action in enumerate(summary["post_import_actions"], start=1):
                logger.info(f"   {number}. {action}")
        return summary
