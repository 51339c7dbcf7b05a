"""
Supabase to Payload CMS migration module.

Moves the concierge application data out of Supabase (Postgres tables, the
auth user registry and Storage) into Payload CMS collections, in four
stages that exchange JSON files:
- export: lossless snapshot of the source
- transform: Payload document shapes, identifiers preserved
- import: batched writes into Payload, with dry run and upsert by id
- validate: counts, field spot-checks and relationship checks

CLI Usage:
    python -m migrations.supabase_to_payload export --export-dir ./migration-data
    python -m migrations.supabase_to_payload transform
    python -m migrations.supabase_to_payload import --dry-run
    python -m migrations.supabase_to_payload validate
    python -m migrations.supabase_to_payload run --live
"""

from migrations.supabase_to_payload.cli import app
from migrations.supabase_to_payload.exporter import SupabaseExporter
from migrations.supabase_to_payload.importer import PayloadImporter
from migrations.supabase_to_payload.migration_verifier import MigrationVerifier
from migrations.supabase_to_payload.payload_client import PayloadClient
from migrations.supabase_to_payload.pipeline import MigrationPipeline
from migrations.supabase_to_payload.stats import (
    ExportResult,
    ImportResult,
    Outcome,
    StepResult,
    TransformationResult,
    ValidationResult,
    ValidationSummary,
)
from migrations.supabase_to_payload.supabase_client import SupabaseClient
from migrations.supabase_to_payload.transformer import DataTransformer

__all__ = [
    "app",
    "SupabaseExporter",
    "DataTransformer",
    "PayloadImporter",
    "MigrationVerifier",
    "MigrationPipeline",
    "SupabaseClient",
    "PayloadClient",
    "Outcome",
    "ExportResult",
    "TransformationResult",
    "ImportResult",
    "ValidationResult",
    "ValidationSummary",
    "StepResult",
]
