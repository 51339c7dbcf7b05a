from migrations.supabase_to_payload.cli import app

app()
