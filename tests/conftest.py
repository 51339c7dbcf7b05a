"""
Pytest configuration and shared fixtures for the migration tests.
"""

from datetime import UTC, datetime

import pytest

from tests.fakes import FakeDestinationStore, write_collection


@pytest.fixture
def fixed_now():
    """Run timestamp used for missing dates."""
    return datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def export_dir(tmp_path):
    directory = tmp_path / "migration-data"
    directory.mkdir()
    return directory


@pytest.fixture
def output_dir(export_dir):
    return export_dir / "transformed"


@pytest.fixture
def destination():
    return FakeDestinationStore()


@pytest.fixture
def sample_export():
    """A small but complete export: three identities, one without a profile."""
    return {
        "auth_users": [
            {
                "id": "u1",
                "email": "ana@example.com",
                "email_confirmed_at": "2024-01-02T10:00:00+00:00",
                "created_at": "2024-01-01T09:00:00+00:00",
                "updated_at": "2024-01-02T10:00:00+00:00",
                "last_sign_in_at": "2024-03-01T08:30:00+00:00",
                "user_metadata": {},
                "app_metadata": {},
            },
            {
                "id": "u2",
                "email": "ben@example.com",
                "email_confirmed_at": None,
                "created_at": "2024-01-05T09:00:00+00:00",
                "updated_at": "2024-01-05T09:00:00+00:00",
                "last_sign_in_at": None,
                "user_metadata": {},
                "app_metadata": {},
            },
            {
                "id": "u3",
                "email": "cara@example.com",
                "email_confirmed_at": "2024-02-01T00:00:00+00:00",
                "created_at": "2024-02-01 00:00:00+00",
                "updated_at": None,
                "last_sign_in_at": None,
                "user_metadata": {},
                "app_metadata": {},
            },
        ],
        "user_profiles": [
            {"id": "u1", "user_id": "u1", "first_name": "Ana", "last_name": "Lopez", "role": "client"},
            {"id": "u2", "user_id": "u2", "first_name": "Ben", "last_name": "Ng", "role": "organizer"},
        ],
        "client_profiles": [
            {
                "id": "c1",
                "user_id": "u1",
                "company_name": "Acme",
                "tier": "elite",
                "loyalty_points": "120",
                "created_at": "2024-01-03T00:00:00+00:00",
                "updated_at": "2024-01-03T00:00:00+00:00",
            }
        ],
        "trips": [
            {
                "id": "t1",
                "title": "Paris getaway",
                "client_id": "c1",
                "created_by": "u2",
                "organizer_id": "u2",
                "status": "in_progress",
                "destinations": '[{"city":"Paris"}]',
                "travelers": [{"id": "u1", "name": "Ana"}, "u3"],
                "start_date": "2024-05-01",
                "end_date": "2024-05-07",
                "created_at": "2024-02-10T12:00:00+00:00",
                "updated_at": "2024-02-10T12:00:00+00:00",
            }
        ],
        "user_preferences": [
            {
                "id": "p1",
                "user_id": "u1",
                "notifications": '{"email": true}',
                "created_at": "2024-01-02T00:00:00+00:00",
                "updated_at": "2024-01-02T00:00:00+00:00",
            }
        ],
        "storage_files": [
            {
                "bucket": "avatars",
                "name": "user1.png",
                "size": 2048,
                "mimetype": "image/png",
                "created_at": "2024-01-01T00:00:00+00:00",
                "updated_at": "2024-01-01T00:00:00+00:00",
                "public_url": "https://project.supabase.co/storage/v1/object/public/avatars/user1.png",
            }
        ],
        "trip_documents": [
            {
                "id": "doc-123",
                "trip_id": "t1",
                "filename": "itinerary.pdf",
                "url": "https://files.example.com/itinerary.pdf",
                "type": "application/pdf",
                "size": 1024,
                "created_at": "2024-02-11T00:00:00+00:00",
                "updated_at": "2024-02-11T00:00:00+00:00",
            }
        ],
    }


@pytest.fixture
def exported(export_dir, sample_export):
    """The sample export written to disk as the exporter would."""
    for name, records in sample_export.items():
        write_collection(export_dir, name, records)
    return export_dir
