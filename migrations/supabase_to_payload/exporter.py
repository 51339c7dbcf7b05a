"""
Supabase exporter.

Writes a lossless snapshot of every source collection to one JSON array file
per collection, plus ``export_summary.json``. No transformation happens here.
"""

import logging
import platform
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from migrations.supabase_to_payload.artifacts import collection_path, ensure_directory, save_json, utc_timestamp
from migrations.supabase_to_payload.stats import ExportResult
from migrations.supabase_to_payload.stores import SourceStore

logger = logging.getLogger(__name__)

AUTH_USERS_FILE = "auth_users"
STORAGE_FILES_FILE = "storage_files"
EXPORT_SUMMARY_FILE = "export_summary.json"


@dataclass(frozen=True)
class ExportTable:
    name: str
    select: str = "*"
    order_column: str = "created_at"


# Application tables, in the order they are exported
EXPORT_TABLES = [
    ExportTable("user_profiles"),
    ExportTable("client_profiles"),
    ExportTable("trips"),
    ExportTable("trip_itineraries"),
    ExportTable("trip_documents"),
    ExportTable("trip_activities"),
    ExportTable("user_preferences"),
    ExportTable("client_contracts"),
    ExportTable("client_activity_logs"),
    ExportTable("email_allowlist"),
]


def normalize_auth_user(user: dict[str, Any]) -> dict[str, Any]:
    """Flatten an admin API user into the same shape as the table exports"""
    return {
        "id": user.get("id"),
        "email": user.get("email"),
        "email_confirmed_at": user.get("email_confirmed_at"),
        "created_at": user.get("created_at"),
        "updated_at": user.get("updated_at"),
        "last_sign_in_at": user.get("last_sign_in_at"),
        "user_metadata": user.get("user_metadata") or {},
        "app_metadata": user.get("app_metadata") or {},
    }


class SupabaseExporter:
    """Exports source tables, auth users and storage metadata to JSON files"""

    def __init__(
        self,
        source: SourceStore,
        export_dir: Path,
        tables: list[ExportTable] | None = None,
        environment: dict[str, Any] | None = None,
    ):
        self.source = source
        self.export_dir = Path(export_dir)
        self.tables = EXPORT_TABLES if tables is None else tables
        self.environment = environment or {}

    async def export_table(self, table: ExportTable) -> ExportResult:
        logger.info(f"🔄 Exporting {table.name}...")
        try:
            rows = await self.source.fetch_table(table.name, select=table.select, order_column=table.order_column)
            save_json(collection_path(self.export_dir, table.name), rows)
        except Exception as e:
            result = ExportResult(table=table.name, success=False, error=str(e))
            logger.error(f"❌ Failed to export {table.name}: {result.error}")
            return result

        logger.info(f"✅ Exported {len(rows)} records from {table.name} to {table.name}.json")
        return ExportResult(table=table.name, count=len(rows))

    async def export_auth_users(self) -> ExportResult:
        logger.info("🔄 Exporting auth.users...")
        try:
            users = [normalize_auth_user(user) for user in await self.source.list_auth_users()]
            # The admin API pages by its own order; keep the creation-time contract of the table exports
            users.sort(key=lambda user: (user["created_at"] or "", str(user["id"])))
            save_json(collection_path(self.export_dir, AUTH_USERS_FILE), users)
        except Exception as e:
            result = ExportResult(table="auth.users", success=False, error=str(e))
            logger.error(f"❌ Failed to export auth.users: {result.error}")
            return result

        logger.info(f"✅ Exported {len(users)} auth users to {AUTH_USERS_FILE}.json")
        return ExportResult(table="auth.users", count=len(users))

    async def export_storage_files(self) -> ExportResult:
        logger.info("🔄 Exporting storage files metadata...")
        warnings: list[str] = []
        try:
            buckets = await self.source.list_buckets()
            all_files = []
            for bucket in buckets:
                bucket_name = bucket.get("name") or bucket.get("id")
                try:
                    files = await self.source.list_objects(bucket_name)
                except Exception as e:
                    warning = f"Could not list files from bucket {bucket_name}: {e}"
                    logger.warning(f"⚠️  Warning: {warning}")
                    warnings.append(warning)
                    continue

                for file in files:
                    name = file.get("name")
                    if not name:
                        warning = f"Skipped object without a name in bucket {bucket_name}: {file.get('id')}"
                        logger.warning(f"⚠️  Warning: {warning}")
                        warnings.append(warning)
                        continue
                    metadata = file.get("metadata") or {}
                    all_files.append(
                        {
                            "bucket": bucket_name,
                            "name": name,
                            "size": metadata.get("size"),
                            "mimetype": metadata.get("mimetype"),
                            "created_at": file.get("created_at"),
                            "updated_at": file.get("updated_at"),
                            "last_accessed_at": file.get("last_accessed_at"),
                            "public_url": self.source.public_url(bucket_name, name),
                        }
                    )

            save_json(collection_path(self.export_dir, STORAGE_FILES_FILE), all_files)
        except Exception as e:
            result = ExportResult(table="storage", success=False, error=str(e), warnings=warnings)
            logger.error(f"❌ Failed to export storage files: {result.error}")
            return result

        logger.info(f"✅ Exported {len(all_files)} storage files metadata to {STORAGE_FILES_FILE}.json")
        return ExportResult(table="storage", count=len(all_files), warnings=warnings)

    async def export_all_data(self) -> dict[str, Any]:
        """Export every collection and write the summary.

        Never raises for a single collection: failures are reported in the
        returned summary.
        """
        logger.info("🚀 Starting Supabase data export...")
        ensure_directory(self.export_dir)

        results = [await self.export_auth_users()]
        for table in self.tables:
            results.append(await self.export_table(table))
        results.append(await self.export_storage_files())

        summary = self.generate_summary(results)
        logger.info("🎉 Export completed!")
        return summary

    def generate_summary(self, results: list[ExportResult]) -> dict[str, Any]:
        summary = {
            "export_date": utc_timestamp(),
            "total_tables": len(results),
            "successful_exports": sum(1 for r in results if r.success),
            "failed_exports": sum(1 for r in results if not r.success),
            "total_records": sum(r.count for r in results),
            "results": [r.to_dict() for r in results],
            "environment": {
                **self.environment,
                "export_directory": str(self.export_dir),
                "python_version": platform.python_version(),
            },
        }
        summary_path = save_json(self.export_dir / EXPORT_SUMMARY_FILE, summary)

        logger.info("📊 Export Summary:")
        logger.info(f"   Total tables: {summary['total_tables']}")
        logger.info(f"   Successful: {summary['successful_exports']}")
        logger.info(f"   Failed: {summary['failed_exports']}")
        logger.info(f"   Total records: {summary['total_records']}")
        logger.info(f"   Summary saved to: {summary_path}")

        if summary["failed_exports"]:
            logger.info("❌ Failed exports:")
            for result in results:
                if not result.success:
                    logger.info(f"   - {result.table}: {result.error}")
        return summary
