"""
Tests for PayloadImporter in migrations/supabase_to_payload/importer.py

Covers:
- Batching and per-record failure isolation
- Dry-run parity with a live run
- User credential placeholders and trip defaults
- Media filtering
- Upsert by preserved id on re-runs
- Fatal initialization errors
"""

import json

import httpx
import pytest

from migrations.supabase_to_payload.exceptions import MigrationConfigError
from migrations.supabase_to_payload.importer import (
    PLACEHOLDER_PASSWORD,
    PayloadImporter,
    batched,
    filter_media,
)
from migrations.supabase_to_payload.payload_client import PayloadClient
from tests.fakes import FakeDestinationStore, write_collection


def make_clients(count: int) -> list[dict]:
    return [{"id": f"client-{n:03d}", "user": f"user-{n:03d}", "companyName": f"Co {n}"} for n in range(1, count + 1)]


def result_for(summary, collection):
    return next(r for r in summary["results"] if r["collection"] == collection)


class TestBatching:
    def test_batched(self):
        assert [len(batch) for batch in batched(list(range(100)), 40)] == [40, 40, 20]
        assert batched([], 40) == []

    @pytest.mark.asyncio
    async def test_single_failure_does_not_stop_the_collection(self, output_dir):
        write_collection(output_dir, "clients", make_clients(100))
        destination = FakeDestinationStore(fail_when=lambda collection, data: data.get("id") == "client-055")

        summary = await PayloadImporter(destination, output_dir, batch_size=40).import_all_data()
        clients = result_for(summary, "clients")

        assert clients["batches"] == 3
        assert clients["totalRecords"] == 100
        assert clients["successfulImports"] == 99
        assert clients["failedImports"] == 1
        assert clients["success"] is False
        assert len(clients["errors"]) == 1
        assert clients["errors"][0].startswith("Record client-055 (")
        assert "The following field is invalid: email" in clients["errors"][0]
        assert len(destination.collections["clients"]) == 99

    @pytest.mark.asyncio
    async def test_error_excerpt_is_truncated(self, output_dir):
        record = {"id": "client-001", "companyName": "x" * 500}
        write_collection(output_dir, "clients", [record])
        destination = FakeDestinationStore(fail_when=lambda collection, data: True)

        summary = await PayloadImporter(destination, output_dir).import_all_data()

        error = result_for(summary, "clients")["errors"][0]
        excerpt = json.dumps(record, ensure_ascii=False)[:100]
        assert error.startswith(f"Record client-001 ({excerpt}...)")

    @pytest.mark.asyncio
    async def test_plain_string_error_body_fails_one_record(self, output_dir):
        write_collection(output_dir, "clients", [{"id": "c1"}, {"id": "c2"}])
        write_collection(output_dir, "trips", [{"id": "t1", "client": "c2"}])

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/access":
                return httpx.Response(200, json={"canAccessAdmin": True})
            if json.loads(request.content).get("id") == "c1":
                return httpx.Response(400, json={"errors": ["Something went wrong"]})
            return httpx.Response(201, json={"doc": json.loads(request.content)})

        client = PayloadClient("https://cms.example.com", "api-key", transport=httpx.MockTransport(handler))
        async with client:
            summary = await PayloadImporter(client, output_dir, upsert=False).import_all_data()

        clients = result_for(summary, "clients")
        assert clients["successfulImports"] == 1
        assert clients["failedImports"] == 1
        assert "Something went wrong" in clients["errors"][0]
        assert result_for(summary, "trips")["successfulImports"] == 1
        assert (output_dir / "import_summary.json").exists()

    @pytest.mark.asyncio
    async def test_unexpected_store_exception_fails_one_record(self, output_dir, destination):
        write_collection(output_dir, "clients", make_clients(3))

        async def create(collection, data):
            if data["id"] == "client-002":
                raise RuntimeError("connection reset by peer")
            return data

        destination.create = create

        summary = await PayloadImporter(destination, output_dir).import_all_data()
        clients = result_for(summary, "clients")

        assert clients["successfulImports"] == 2
        assert clients["failedImports"] == 1
        assert clients["errors"][0].endswith("Unexpected error: connection reset by peer")


class TestDryRun:
    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, output_dir):
        write_collection(output_dir, "clients", make_clients(10))

        summary = await PayloadImporter(None, output_dir, dry_run=True).import_all_data()

        assert summary["dry_run"] is True
        assert result_for(summary, "clients")["successfulImports"] == 10
        assert summary["post_import_actions"] == []

    @pytest.mark.asyncio
    async def test_dry_run_parity_with_live_run(self, output_dir):
        write_collection(output_dir, "clients", make_clients(7))
        write_collection(
            output_dir,
            "media",
            [
                {"id": "m1", "filename": "a.png", "url": "https://x/a.png"},
                {"id": "m2", "filename": "b.png", "url": None},
            ],
        )
        destination = FakeDestinationStore()

        dry = await PayloadImporter(destination, output_dir, dry_run=True).import_all_data()
        assert destination.writes() == 0
        live = await PayloadImporter(destination, output_dir).import_all_data()

        assert dry["successful_imports"] == live["successful_imports"] == 8
        assert dry["filtered_records"] == live["filtered_records"] == 1


class TestPreparation:
    @pytest.mark.asyncio
    async def test_users_get_placeholder_credentials(self, output_dir, destination):
        write_collection(output_dir, "users", [{"id": "u1", "email": "a@example.com"}])

        await PayloadImporter(destination, output_dir).import_all_data()

        user = destination.collections["users"]["u1"]
        assert user["password"] == PLACEHOLDER_PASSWORD
        assert user["passwordResetRequired"] is True

    @pytest.mark.asyncio
    async def test_trip_defaults(self, output_dir, destination):
        write_collection(output_dir, "trips", [{"id": "t1", "title": "Paris", "priority": None}])

        await PayloadImporter(destination, output_dir).import_all_data()

        trip = destination.collections["trips"]["t1"]
        assert trip["priority"] == "medium"
        assert trip["currency"] == "USD"
        assert trip["itinerary"] == []
        assert trip["documents"] == []

    def test_filter_media(self):
        kept, filtered = filter_media(
            [
                {"id": "m1", "filename": "a.png", "url": "https://x/a.png"},
                {"id": "m2", "filename": "", "url": "https://x/b.png"},
                {"id": "m3", "filename": "c.png"},
            ]
        )
        assert [m["id"] for m in kept] == ["m1"]
        assert filtered == 2

    @pytest.mark.asyncio
    async def test_filtered_media_counted(self, output_dir, destination):
        write_collection(output_dir, "media", [{"id": "m1", "filename": "a.png"}, {"id": "m2", "url": "https://x"}])

        summary = await PayloadImporter(destination, output_dir).import_all_data()
        media = result_for(summary, "media")

        assert media["totalRecords"] == 2
        assert media["filteredRecords"] == 2
        assert media["successfulImports"] == 0
        assert media["success"] is True


class TestUpsert:
    @pytest.mark.asyncio
    async def test_re_run_updates_instead_of_duplicating(self, output_dir, destination):
        write_collection(output_dir, "clients", make_clients(3))
        await PayloadImporter(destination, output_dir).import_all_data()

        write_collection(output_dir, "clients", [{**c, "companyName": "Renamed"} for c in make_clients(3)])
        summary = await PayloadImporter(destination, output_dir).import_all_data()
        clients = result_for(summary, "clients")

        assert clients["successfulImports"] == 3
        assert clients["updatedRecords"] == 3
        assert len(destination.collections["clients"]) == 3
        assert destination.collections["clients"]["client-001"]["companyName"] == "Renamed"

    @pytest.mark.asyncio
    async def test_update_keeps_existing_password(self, output_dir, destination):
        write_collection(output_dir, "users", [{"id": "u1", "email": "a@example.com"}])
        await PayloadImporter(destination, output_dir).import_all_data()
        destination.collections["users"]["u1"]["password"] = "chosen-by-user"

        await PayloadImporter(destination, output_dir).import_all_data()

        assert destination.collections["users"]["u1"]["password"] == "chosen-by-user"

    @pytest.mark.asyncio
    async def test_without_upsert_duplicates_fail(self, output_dir, destination):
        write_collection(output_dir, "clients", make_clients(2))
        await PayloadImporter(destination, output_dir, upsert=False).import_all_data()

        summary = await PayloadImporter(destination, output_dir, upsert=False).import_all_data()

        assert result_for(summary, "clients")["failedImports"] == 2
        assert ("find_by_id", "clients") not in destination.calls


class TestInputsAndSummary:
    @pytest.mark.asyncio
    async def test_missing_file_imports_nothing(self, output_dir, destination):
        output_dir.mkdir(parents=True)

        summary = await PayloadImporter(destination, output_dir).import_all_data()

        assert summary["total_records"] == 0
        assert summary["failed_collections"] == 0

    @pytest.mark.asyncio
    async def test_unreadable_file_fails_only_that_collection(self, output_dir, destination):
        write_collection(output_dir, "users", [{"id": "u1", "email": "a@example.com"}])
        (output_dir / "clients.json").write_text('{"not": "an array"}', encoding="utf-8")

        summary = await PayloadImporter(destination, output_dir).import_all_data()

        assert result_for(summary, "clients")["success"] is False
        assert result_for(summary, "users")["successfulImports"] == 1
        assert summary["failed_collections"] == 1

    @pytest.mark.asyncio
    async def test_summary_written_with_post_import_actions(self, output_dir, destination):
        write_collection(output_dir, "users", [{"id": "u1", "email": "a@example.com"}])

        await PayloadImporter(destination, output_dir).import_all_data()
        summary = json.loads((output_dir / "import_summary.json").read_text(encoding="utf-8"))

        assert [r["collection"] for r in summary["results"]] == [
            "users",
            "clients",
            "userPreferences",
            "media",
            "trips",
        ]
        assert summary["post_import_actions"][0] == "Reset passwords for all imported users"
        assert summary["environment"]["batch_size"] == 100


class TestInitialization:
    def test_live_run_requires_destination(self, output_dir):
        with pytest.raises(MigrationConfigError):
            PayloadImporter(None, output_dir)

    def test_batch_size_must_be_positive(self, output_dir, destination):
        with pytest.raises(MigrationConfigError):
            PayloadImporter(destination, output_dir, batch_size=0)

    @pytest.mark.asyncio
    async def test_unreachable_destination_is_fatal(self, output_dir, destination):
        destination.reachable = False

        with pytest.raises(MigrationConfigError, match="not reachable"):
            await PayloadImporter(destination, output_dir).import_all_data()
        assert destination.writes() == 0
