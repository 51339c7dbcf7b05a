from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Core Settings
    app_name: str = "Concierge Migration"
    version: str = "1.0.0"
    logging_level: str = "INFO"

    # Source Store (Supabase)
    supabase_url: str | None = None
    supabase_service_key: str | None = None

    # Destination Store (Payload CMS)
    payload_url: str | None = None
    payload_secret: str | None = None
    payload_auth_collection: str = "users"

    # Intermediate Artifacts
    export_dir: Path = Path("./migration-data")
    output_dir: Path | None = None

    # Export Settings
    export_page_size: int = Field(default=1000, gt=0)
    auth_page_size: int = Field(default=1000, gt=0)
    storage_page_size: int = Field(default=1000, gt=0)

    # Import Settings
    batch_size: int = Field(default=100, gt=0)
    dry_run: bool = False
    upsert: bool = True

    # Validation Settings
    validation_page_size: int = Field(default=1000, gt=0)
    validation_sample_size: int = Field(default=10, ge=0)

    # Network Settings
    http_timeout: float = 30.0

    @model_validator(mode="after")
    def default_output_dir(self) -> "Settings":
        if not self.output_dir:
            self.output_dir = self.export_dir / "transformed"
        return self

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
