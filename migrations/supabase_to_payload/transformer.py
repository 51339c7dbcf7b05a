"""
Supabase export to Payload document transformer.

Reads the exporter's JSON files and writes one JSON array per Payload
collection. Identifiers are kept verbatim, nested JSON columns are resolved
through the normalizers in ``field_normalizers`` and every problem found on
the way is recorded in ``transformation_summary.json`` instead of raised.
"""

import logging
import platform
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from db.enums import ClientStatus, ClientTier, MediaSource, TripPriority, TripStatus, UserRole
from migrations.supabase_to_payload.artifacts import (
    collection_path,
    ensure_directory,
    load_json_array_or_empty,
    save_json,
    utc_timestamp,
)
from migrations.supabase_to_payload.field_normalizers import (
    Normalized,
    as_reference,
    normalize_date,
    normalize_destinations,
    normalize_notifications,
    normalize_number,
    normalize_optional_date,
    normalize_travelers,
    resolve_enum,
    storage_media_id,
)
from migrations.supabase_to_payload.stats import TransformationResult

logger = logging.getLogger(__name__)

TRANSFORM_ORDER = ["users", "clients", "userPreferences", "media", "trips"]
TRANSFORMATION_SUMMARY_FILE = "transformation_summary.json"

DEFAULT_CURRENCY = "USD"
DEFAULT_MIME_TYPE = "application/octet-stream"

# (collection, field, referenced collection, is a list of references)
REFERENCE_FIELDS = [
    ("clients", "user", "users", False),
    ("userPreferences", "user", "users", False),
    ("media", "trip", "trips", False),
    ("trips", "client", "clients", False),
    ("trips", "organizer", "users", False),
    ("trips", "createdBy", "users", False),
    ("trips", "travelers", "users", True),
]


@dataclass
class CollectionTransform:
    """Transformed documents of one collection with the findings gathered on the way"""

    result: TransformationResult
    records: list[dict[str, Any]] = field(default_factory=list)
    run_timestamp: str = ""

    def note(self, record_id: Any, field_name: str, issue: str | None):
        if issue:
            self.result.integrity_issues.append(f"{self.result.collection} {record_id}: {field_name} {issue}")

    def take(self, normalized: Normalized, record_id: Any, field_name: str) -> Any:
        self.note(record_id, field_name, normalized.issue)
        return normalized.value

    def date(self, value: Any, record_id: Any, field_name: str) -> str:
        normalized = normalize_date(value, self.run_timestamp)
        if normalized.defaulted:
            self.result.defaulted_dates += 1
        return self.take(normalized, record_id, field_name)

    def identifier(self, source: dict[str, Any], source_field: str = "id") -> str | None:
        record_id = as_reference(source.get(source_field))
        if record_id is None:
            self.result.integrity_issues.append(
                f"{self.result.collection}: record without {source_field} skipped: {str(source)[:100]}"
            )
        return record_id

    def finish(self) -> TransformationResult:
        self.result.transformed_count = len(self.records)
        if not self.result.count_matches:
            self.result.integrity_issues.append(
                f"{self.result.collection}: count mismatch, {self.result.original_count} exported "
                f"but {self.result.transformed_count} transformed"
            )
        return self.result


class DataTransformer:
    """Transforms exported Supabase data into Payload collection documents.

    ``now`` fixes the run timestamp used for missing dates; when omitted the
    current time is taken once at construction.
    """

    def __init__(
        self,
        export_dir: Path,
        output_dir: Path,
        now: datetime | None = None,
        environment: dict[str, Any] | None = None,
    ):
        self.export_dir = Path(export_dir)
        self.output_dir = Path(output_dir)
        self.run_timestamp = utc_timestamp(now)
        self.environment = environment or {}

    def load_exported(self, name: str) -> list[dict[str, Any]]:
        return load_json_array_or_empty(collection_path(self.export_dir, name))

    def _start(self, collection: str, original_count: int) -> CollectionTransform:
        return CollectionTransform(
            result=TransformationResult(collection=collection, original_count=original_count),
            run_timestamp=self.run_timestamp,
        )

    # =========================================================================
    # Collections
    # =========================================================================

    def transform_users(
        self, auth_users: list[dict[str, Any]], profiles: list[dict[str, Any]]
    ) -> CollectionTransform:
        """Merge auth identities with their profiles into Payload users"""
        current = self._start("users", len(auth_users))
        profiles_by_user = {}
        for profile in profiles:
            user_id = as_reference(profile.get("user_id")) or as_reference(profile.get("id"))
            if user_id is not None:
                profiles_by_user[user_id] = profile

        for user in auth_users:
            user_id = current.identifier(user)
            if user_id is None:
                continue
            profile = profiles_by_user.get(user_id, {})
            record = {
                "id": user_id,
                "email": user.get("email"),
                "firstName": profile.get("first_name") or "",
                "lastName": profile.get("last_name") or "",
                "role": current.take(resolve_enum(profile.get("role"), UserRole, UserRole.CLIENT), user_id, "role"),
                "phone": profile.get("phone"),
                "emailVerified": bool(user.get("email_confirmed_at")),
                "avatar": profile.get("avatar_url"),
                "createdAt": current.date(user.get("created_at"), user_id, "createdAt"),
                "updatedAt": current.date(user.get("updated_at"), user_id, "updatedAt"),
            }
            last_login = normalize_optional_date(user.get("last_sign_in_at"))
            if last_login:
                record["lastLoginAt"] = last_login
            current.records.append(record)

        logger.info(f"✅ Transformed {len(current.records)} users")
        return current

    def transform_clients(self, clients: list[dict[str, Any]]) -> CollectionTransform:
        current = self._start("clients", len(clients))
        for client in clients:
            client_id = current.identifier(client)
            if client_id is None:
                continue

            def number(source_field: str, field_name: str) -> int | float:
                return current.take(normalize_number(client.get(source_field)), client_id, field_name)

            record = {
                "id": client_id,
                "user": as_reference(client.get("user_id")),
                "companyName": client.get("company_name") or "",
                "industry": client.get("industry") or "",
                "title": client.get("title") or "",
                "department": client.get("department") or "",
                "businessPhone": client.get("business_phone") or "",
                "businessEmail": client.get("business_email") or "",
                "tier": current.take(
                    resolve_enum(client.get("tier"), ClientTier, ClientTier.STANDARD), client_id, "tier"
                ),
                "status": current.take(
                    resolve_enum(client.get("status"), ClientStatus, ClientStatus.ACTIVE), client_id, "status"
                ),
                "preferredContactMethod": client.get("preferred_contact_method") or "email",
                "travelFrequency": client.get("travel_frequency") or "occasional",
                "averageTripDuration": number("average_trip_duration", "averageTripDuration"),
                "loyaltyPoints": number("loyalty_points", "loyaltyPoints"),
                "membershipLevel": client.get("membership_level") or "bronze",
                "creditLimit": number("credit_limit", "creditLimit"),
                "currency": client.get("currency") or DEFAULT_CURRENCY,
                "createdAt": current.date(client.get("created_at"), client_id, "createdAt"),
                "updatedAt": current.date(client.get("updated_at"), client_id, "updatedAt"),
            }
            last_activity = normalize_optional_date(client.get("last_activity_at"))
            if last_activity:
                record["lastActivityAt"] = last_activity
            current.records.append(record)

        logger.info(f"✅ Transformed {len(current.records)} clients")
        return current

    def transform_user_preferences(self, preferences: list[dict[str, Any]]) -> CollectionTransform:
        current = self._start("userPreferences", len(preferences))
        for preference in preferences:
            preference_id = current.identifier(preference)
            if preference_id is None:
                continue
            current.records.append(
                {
                    "id": preference_id,
                    "user": as_reference(preference.get("user_id")),
                    "language": preference.get("language") or "en",
                    "theme": preference.get("theme") or "light",
                    "notifications": current.take(
                        normalize_notifications(preference.get("notifications")), preference_id, "notifications"
                    ),
                    "locationEnabled": bool(preference.get("location_enabled")),
                    "createdAt": current.date(preference.get("created_at"), preference_id, "createdAt"),
                    "updatedAt": current.date(preference.get("updated_at"), preference_id, "updatedAt"),
                }
            )

        logger.info(f"✅ Transformed {len(current.records)} user preferences")
        return current

    def transform_media(
        self, storage_files: list[dict[str, Any]], trip_documents: list[dict[str, Any]]
    ) -> CollectionTransform:
        """Unify Storage objects and trip documents into one media collection"""
        current = self._start("media", len(storage_files) + len(trip_documents))

        for file in storage_files:
            bucket, name = file.get("bucket"), file.get("name")
            if not bucket or not name:
                current.result.integrity_issues.append(
                    f"media: storage object without bucket or name skipped: {str(file)[:100]}"
                )
                continue
            media_id = storage_media_id(bucket, name)
            current.records.append(
                {
                    "id": media_id,
                    "filename": name,
                    "mimeType": file.get("mimetype") or DEFAULT_MIME_TYPE,
                    "filesize": current.take(normalize_number(file.get("size")), media_id, "filesize"),
                    "url": file.get("public_url"),
                    "alt": name,
                    "createdAt": current.date(file.get("created_at"), media_id, "createdAt"),
                    "updatedAt": current.date(file.get("updated_at"), media_id, "updatedAt"),
                    "bucket": bucket,
                    "source": str(MediaSource.SUPABASE_STORAGE),
                }
            )

        for document in trip_documents:
            document_id = current.identifier(document)
            if document_id is None:
                continue
            current.records.append(
                {
                    "id": document_id,
                    "filename": document.get("filename") or "document",
                    "mimeType": document.get("type") or DEFAULT_MIME_TYPE,
                    "filesize": current.take(normalize_number(document.get("size")), document_id, "filesize"),
                    "url": document.get("url"),
                    "alt": document.get("filename") or "Trip document",
                    "trip": as_reference(document.get("trip_id")),
                    "createdAt": current.date(document.get("created_at"), document_id, "createdAt"),
                    "updatedAt": current.date(document.get("updated_at"), document_id, "updatedAt"),
                    "source": str(MediaSource.TRIP_DOCUMENT),
                }
            )

        logger.info(f"✅ Transformed {len(current.records)} media files")
        return current

    def transform_trips(self, trips: list[dict[str, Any]]) -> CollectionTransform:
        current = self._start("trips", len(trips))
        for trip in trips:
            trip_id = current.identifier(trip)
            if trip_id is None:
                continue
            record = {
                "id": trip_id,
                "title": trip.get("title") or "",
                "description": trip.get("description") or "",
                "client": as_reference(trip.get("client_id")),
                "travelers": current.take(normalize_travelers(trip.get("travelers")), trip_id, "travelers"),
                "type": trip.get("type"),
                "status": current.take(
                    resolve_enum(trip.get("status"), TripStatus, TripStatus.PLANNING), trip_id, "status"
                ),
                "priority": current.take(
                    resolve_enum(trip.get("priority"), TripPriority, TripPriority.MEDIUM), trip_id, "priority"
                ),
                "startDate": current.date(trip.get("start_date"), trip_id, "startDate"),
                "endDate": current.date(trip.get("end_date"), trip_id, "endDate"),
                "destinations": current.take(
                    normalize_destinations(trip.get("destinations")), trip_id, "destinations"
                ),
                "estimatedBudget": current.take(
                    normalize_number(trip.get("estimated_budget")), trip_id, "estimatedBudget"
                ),
                "actualBudget": current.take(normalize_number(trip.get("actual_budget")), trip_id, "actualBudget"),
                "currency": trip.get("currency") or DEFAULT_CURRENCY,
                "accommodationPreference": trip.get("accommodation_preference"),
                "transportationPreference": trip.get("transportation_preference"),
                "notes": trip.get("notes") or "",
                "createdAt": current.date(trip.get("created_at"), trip_id, "createdAt"),
                "updatedAt": current.date(trip.get("updated_at"), trip_id, "updatedAt"),
                "createdBy": as_reference(trip.get("created_by")),
            }
            organizer = as_reference(trip.get("organizer_id"))
            if organizer:
                record["organizer"] = organizer
            current.records.append(record)

        logger.info(f"✅ Transformed {len(current.records)} trips")
        return current

    # =========================================================================
    # Integrity
    # =========================================================================

    @staticmethod
    def check_references(collections: dict[str, list[dict[str, Any]]]) -> dict[str, list[str]]:
        """Find relationship values that do not match a transformed document id"""
        known_ids = {name: {record["id"] for record in records} for name, records in collections.items()}
        issues: dict[str, list[str]] = {name: [] for name in collections}

        for collection, field_name, target, is_list in REFERENCE_FIELDS:
            if collection not in collections or target not in known_ids:
                continue
            for record in collections[collection]:
                value = record.get(field_name)
                references = value if is_list else [value]
                for reference in references:
                    if reference is None:
                        # Optional links are omitted; required ones are reported as missing
                        if field_name in ("user", "client", "createdBy"):
                            issues[collection].append(f"{collection} {record['id']}: {field_name} is missing")
                        continue
                    if reference not in known_ids[target]:
                        issues[collection].append(
                            f"{collection} {record['id']}: {field_name} references unknown {target} {reference}"
                        )
        return issues

    # =========================================================================
    # Run
    # =========================================================================

    def _run_collection(self, collection: str, transform, *sources: str) -> CollectionTransform:
        logger.info(f"🔄 Transforming {collection}...")
        try:
            inputs = [self.load_exported(source) for source in sources]
            return transform(*inputs)
        except Exception as e:
            current = self._start(collection, 0)
            current.result.success = False
            current.result.error = str(e)
            logger.error(f"❌ Failed to transform {collection}: {current.result.error}")
            return current

    def transform_all_data(self) -> dict[str, Any]:
        """Transform every collection in dependency order and write the outputs.

        Returns the transformation summary; count mismatches and dangling
        references are recorded in it, never raised.
        """
        logger.info("🚀 Starting data transformation...")
        ensure_directory(self.output_dir)

        transformed = [
            self._run_collection("users", self.transform_users, "auth_users", "user_profiles"),
            self._run_collection("clients", self.transform_clients, "client_profiles"),
            self._run_collection("userPreferences", self.transform_user_preferences, "user_preferences"),
            self._run_collection("media", self.transform_media, "storage_files", "trip_documents"),
            self._run_collection("trips", self.transform_trips, "trips"),
        ]

        # Only successfully transformed collections take part in the reference check
        collections = {
            current.result.collection: current.records for current in transformed if current.result.success
        }
        reference_issues = self.check_references(collections)

        results = []
        for current in transformed:
            current.result.integrity_issues.extend(reference_issues.get(current.result.collection, []))
            if current.result.success:
                save_json(collection_path(self.output_dir, current.result.collection), current.records)
                results.append(current.finish())
            else:
                collection_path(self.output_dir, current.result.collection).unlink(missing_ok=True)
                results.append(current.result)

        summary = self.generate_summary(results)
        logger.info("🎉 Transformation completed!")
        return summary

    def generate_summary(self, results: list[TransformationResult]) -> dict[str, Any]:
        integrity_issues = [issue for result in results for issue in result.integrity_issues]
        summary = {
            "transformation_date": utc_timestamp(),
            "run_timestamp": self.run_timestamp,
            "total_collections": len(results),
            "successful_transformations": sum(1 for r in results if r.success),
            "failed_transformations": sum(1 for r in results if not r.success),
            "total_original_records": sum(r.original_count for r in results),
            "total_transformed_records": sum(r.transformed_count for r in results),
            "total_defaulted_dates": sum(r.defaulted_dates for r in results),
            "results": [r.to_dict() for r in results],
            "integrity_issues": integrity_issues,
            "environment": {
                **self.environment,
                "export_directory": str(self.export_dir),
                "output_directory": str(self.output_dir),
                "python_version": platform.python_version(),
            },
        }
        summary_path = save_json(self.output_dir / TRANSFORMATION_SUMMARY_FILE, summary)

        logger.info("📊 Transformation Summary:")
        logger.info(f"   Total collections: {summary['total_collections']}")
        logger.info(f"   Successful: {summary['successful_transformations']}")
        logger.info(f"   Failed: {summary['failed_transformations']}")
        logger.info(f"   Original records: {summary['total_original_records']}")
        logger.info(f"   Transformed records: {summary['total_transformed_records']}")
        logger.info(f"   Dates defaulted to run time: {summary['total_defaulted_dates']}")
        logger.info(f"   Summary saved to: {summary_path}")

        if integrity_issues:
            logger.warning(f"⚠️  {len(integrity_issues)} integrity issues found:")
            for issue in integrity_issues[:10]:
                logger.warning(f"   - {issue}")
            if len(integrity_issues) > 10:
                logger.warning(f"   ... and {len(integrity_issues) - 10} more")

        if summary["failed_transformations"]:
            logger.info("❌ Failed transformations:")
            for result in results:
                if not result.success:
                    logger.info(f"   - {result.collection}: {result.error}")
        return summary
