"""
Tests for SupabaseExporter in migrations/supabase_to_payload/exporter.py
"""

import json

import pytest

from migrations.supabase_to_payload.exporter import EXPORT_TABLES, SupabaseExporter, normalize_auth_user
from tests.fakes import FakeSourceStore, read_collection


def make_source(**overrides) -> FakeSourceStore:
    defaults = {
        "tables": {
            "user_profiles": [{"id": "u1", "user_id": "u1", "first_name": "Ana"}],
            "trips": [{"id": "t1", "title": "Paris"}, {"id": "t2", "title": "Rome"}],
        },
        "auth_users": [
            {"id": "u2", "email": "b@example.com", "created_at": "2024-02-01T00:00:00+00:00", "aud": "authenticated"},
            {"id": "u1", "email": "a@example.com", "created_at": "2024-01-01T00:00:00+00:00"},
        ],
        "buckets": {
            "avatars": [
                {
                    "id": "obj-1",
                    "name": "user1.png",
                    "metadata": {"size": 2048, "mimetype": "image/png"},
                    "created_at": "2024-01-01T00:00:00+00:00",
                }
            ],
        },
    }
    defaults.update(overrides)
    return FakeSourceStore(**defaults)


class TestExportAll:
    @pytest.mark.asyncio
    async def test_every_collection_written(self, export_dir):
        summary = await SupabaseExporter(make_source(), export_dir).export_all_data()

        assert summary["failed_exports"] == 0
        assert summary["total_tables"] == len(EXPORT_TABLES) + 2
        assert summary["total_records"] == 1 + 2 + 2 + 1
        for table in EXPORT_TABLES:
            assert (export_dir / f"{table.name}.json").exists()
        assert read_collection(export_dir, "trips") == [{"id": "t1", "title": "Paris"}, {"id": "t2", "title": "Rome"}]
        assert json.loads((export_dir / "export_summary.json").read_text(encoding="utf-8"))["total_records"] == 6

    @pytest.mark.asyncio
    async def test_partial_failure_isolation(self, export_dir):
        source = make_source(failing_tables={"trips"})

        summary = await SupabaseExporter(source, export_dir).export_all_data()

        failed = [r for r in summary["results"] if not r["success"]]
        assert len(failed) == 1
        assert failed[0]["table"] == "trips"
        assert "does not exist" in failed[0]["error"]
        assert not (export_dir / "trips.json").exists()
        assert read_collection(export_dir, "user_profiles")[0]["first_name"] == "Ana"
        assert (export_dir / "storage_files.json").exists()

    @pytest.mark.asyncio
    async def test_auth_failure_does_not_stop_tables(self, export_dir):
        source = make_source()
        source.fail_auth = True

        summary = await SupabaseExporter(source, export_dir).export_all_data()

        assert summary["failed_exports"] == 1
        assert summary["results"][0] == {
            "table": "auth.users",
            "count": 0,
            "success": False,
            "error": "User not allowed",
        }
        assert len(read_collection(export_dir, "trips")) == 2


class TestAuthUsers:
    @pytest.mark.asyncio
    async def test_normalized_and_ordered_by_creation(self, export_dir):
        await SupabaseExporter(make_source(), export_dir).export_all_data()
        users = read_collection(export_dir, "auth_users")

        assert [u["id"] for u in users] == ["u1", "u2"]
        assert "aud" not in users[1]
        assert users[0]["user_metadata"] == {}

    def test_normalize_auth_user_keeps_flat_fields(self):
        user = normalize_auth_user({"id": "u1", "email": "a@example.com", "identities": [{"provider": "email"}]})
        assert set(user) == {
            "id",
            "email",
            "email_confirmed_at",
            "created_at",
            "updated_at",
            "last_sign_in_at",
            "user_metadata",
            "app_metadata",
        }


class TestStorage:
    @pytest.mark.asyncio
    async def test_storage_descriptor(self, export_dir):
        await SupabaseExporter(make_source(), export_dir).export_all_data()
        files = read_collection(export_dir, "storage_files")

        assert files == [
            {
                "bucket": "avatars",
                "name": "user1.png",
                "size": 2048,
                "mimetype": "image/png",
                "created_at": "2024-01-01T00:00:00+00:00",
                "updated_at": None,
                "last_accessed_at": None,
                "public_url": "https://project.supabase.co/storage/v1/object/public/avatars/user1.png",
            }
        ]

    @pytest.mark.asyncio
    async def test_failing_bucket_is_a_warning(self, export_dir):
        source = make_source(
            buckets={"avatars": [{"id": "obj-1", "name": "a.png"}], "private": []},
            failing_buckets={"private"},
        )

        summary = await SupabaseExporter(source, export_dir).export_all_data()

        storage = next(r for r in summary["results"] if r["table"] == "storage")
        assert storage["success"] is True
        assert storage["count"] == 1
        assert storage["warnings"] == ["Could not list files from bucket private: Bucket private not found"]
        assert len(read_collection(export_dir, "storage_files")) == 1

    @pytest.mark.asyncio
    async def test_object_without_name_is_skipped(self, export_dir):
        source = make_source(
            buckets={
                "avatars": [{"id": "obj-1", "name": "a.png"}, {"id": "obj-2"}],
                "documents": [{"id": "obj-3", "name": "plan.pdf"}],
            }
        )

        summary = await SupabaseExporter(source, export_dir).export_all_data()

        storage = next(r for r in summary["results"] if r["table"] == "storage")
        assert storage["success"] is True
        assert storage["count"] == 2
        assert storage["warnings"] == ["Skipped object without a name in bucket avatars: obj-2"]
        assert [f["name"] for f in read_collection(export_dir, "storage_files")] == ["a.png", "plan.pdf"]
