import asyncio
import logging
from pathlib import Path

import typer

from db.config import settings
from migrations.supabase_to_payload.exceptions import MigrationConfigError
from migrations.supabase_to_payload.exporter import SupabaseExporter
from migrations.supabase_to_payload.importer import PayloadImporter
from migrations.supabase_to_payload.migration_verifier import MigrationVerifier
from migrations.supabase_to_payload.payload_client import PayloadClient
from migrations.supabase_to_payload.pipeline import MigrationPipeline
from migrations.supabase_to_payload.supabase_client import SupabaseClient
from migrations.supabase_to_payload.transformer import DataTransformer

# Set up logging with more detailed format
logging.basicConfig(
    level=getattr(logging, settings.logging_level.upper(), logging.INFO),
    format="%(asctime)s - %(levelname)s - [%(name)s:%(lineno)d] - %(message)s",
)
logger = logging.getLogger(__name__)

app = typer.Typer(help="Migrate application data from Supabase to Payload CMS")


def create_source() -> SupabaseClient:
    return SupabaseClient(
        settings.supabase_url,
        settings.supabase_service_key,
        page_size=settings.export_page_size,
        auth_page_size=settings.auth_page_size,
        storage_page_size=settings.storage_page_size,
        timeout=settings.http_timeout,
    )


def create_destination() -> PayloadClient:
    return PayloadClient(
        settings.payload_url,
        settings.payload_secret,
        auth_collection=settings.payload_auth_collection,
        page_size=settings.validation_page_size,
        timeout=settings.http_timeout,
    )


def environment() -> dict:
    return {"supabase_url": settings.supabase_url, "payload_url": settings.payload_url}


def run_stage(name: str, stage) -> object:
    """Run an async stage, mapping fatal errors to exit code 1"""
    try:
        return asyncio.run(stage())
    except MigrationConfigError as e:
        logger.error(f"💥 {name} cannot start: {e}")
        raise typer.Exit(code=1)
    except Exception as e:
        logger.exception(f"💥 {name} failed: {str(e)}")
        raise typer.Exit(code=1)


@app.command()
def export(
    export_dir: Path | None = typer.Option(None, help="Directory to write exported JSON files to"),
):
    """Export every Supabase table, the auth users and the storage index to JSON files"""
    export_dir = export_dir or settings.export_dir

    async def run_export():
        async with create_source() as source:
            exporter = SupabaseExporter(source, export_dir, environment=environment())
            return await exporter.export_all_data()

    typer.echo(f"Exporting Supabase data to {export_dir}...")
    run_stage("Export", run_export)


@app.command()
def transform(
    export_dir: Path | None = typer.Option(None, help="Directory holding the exported JSON files"),
    output_dir: Path | None = typer.Option(None, help="Directory to write transformed JSON files to"),
):
    """Transform exported data into Payload collection documents"""
    if output_dir is None:
        output_dir = export_dir / "transformed" if export_dir else settings.output_dir
    export_dir = export_dir or settings.export_dir

    async def run_transform():
        return DataTransformer(export_dir, output_dir, environment=environment()).transform_all_data()

    typer.echo(f"Transforming {export_dir} into {output_dir}...")
    run_stage("Transformation", run_transform)


@app.command("import")
def import_data(
    input_dir: Path | None = typer.Option(None, help="Directory holding the transformed JSON files"),
    batch_size: int | None = typer.Option(None, min=1, help="Records per import batch"),
    dry_run: bool | None = typer.Option(None, "--dry-run/--live", help="Count records without writing them"),
    upsert: bool | None = typer.Option(
        None, "--upsert/--no-upsert", help="Update documents that already exist instead of creating duplicates"
    ),
):
    """Import transformed documents into Payload"""
    input_dir = input_dir or settings.output_dir
    batch_size = batch_size or settings.batch_size
    dry_run = settings.dry_run if dry_run is None else dry_run
    upsert = settings.upsert if upsert is None else upsert

    async def run_import():
        if dry_run:
            importer = PayloadImporter(None, input_dir, batch_size=batch_size, dry_run=True, environment=environment())
            return await importer.import_all_data()
        async with create_destination() as destination:
            importer = PayloadImporter(
                destination, input_dir, batch_size=batch_size, upsert=upsert, environment=environment()
            )
            return await importer.import_all_data()

    mode = "DRY RUN" if dry_run else f"LIVE ({'upsert' if upsert else 'create only'})"
    typer.echo(f"Importing {input_dir} into Payload, mode: {mode}, batch size: {batch_size}...")
    run_stage("Import", run_import)


@app.command()
def validate(
    export_dir: Path | None = typer.Option(None, help="Directory holding the exported JSON files"),
    transformed_dir: Path | None = typer.Option(None, help="Directory holding the transformed JSON files"),
    sample_size: int | None = typer.Option(None, min=0, help="Live records to spot-check per collection"),
):
    """Validate the Payload collections against the export and transform outputs"""
    export_dir = export_dir or settings.export_dir
    transformed_dir = transformed_dir or settings.output_dir
    sample_size = settings.validation_sample_size if sample_size is None else sample_size

    async def run_validation():
        async with create_destination() as destination:
            verifier = MigrationVerifier(
                destination, export_dir, transformed_dir, sample_size=sample_size, environment=environment()
            )
            summary, _ = await verifier.verify_migration()
            return summary

    typer.echo("Starting validation...")
    summary = run_stage("Validation", run_validation)
    if not summary.overall_success:
        raise typer.Exit(code=1)


@app.command()
def run(
    export_dir: Path | None = typer.Option(None, help="Working directory for the pipeline artifacts"),
    live: bool = typer.Option(False, "--live", help="Write to Payload and validate instead of a dry-run import"),
    batch_size: int | None = typer.Option(None, min=1, help="Records per import batch"),
    upsert: bool | None = typer.Option(None, "--upsert/--no-upsert", help="Update existing documents on import"),
):
    """Run export, transform, import and validation end to end"""
    export_dir = export_dir or settings.export_dir
    batch_size = batch_size or settings.batch_size
    upsert = settings.upsert if upsert is None else upsert

    async def run_pipeline():
        async with create_source() as source:
            if not live:
                pipeline = MigrationPipeline(
                    source, None, export_dir, batch_size=batch_size, upsert=upsert, environment=environment()
                )
                return await pipeline.run()
            async with create_destination() as destination:
                pipeline = MigrationPipeline(
                    source,
                    destination,
                    export_dir,
                    live_import=True,
                    batch_size=batch_size,
                    upsert=upsert,
                    sample_size=settings.validation_sample_size,
                    environment=environment(),
                )
                return await pipeline.run()

    typer.echo(f"Running migration pipeline in {export_dir} ({'LIVE' if live else 'DRY RUN'})...")
    report = run_stage("Pipeline", run_pipeline)
    if not report["overall_success"]:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
