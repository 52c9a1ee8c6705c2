"""Inventory import engine configuration via pydantic-settings."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings


class InventorySettings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///inventory.db"
    echo_sql: bool = False
    app_title: str = "Asset Inventory Import Engine"

    # Import pipeline
    import_batch_size: int = 25
    import_tag_retry_limit: int = 3
    # Numeric asset tags get this prefix plus zero padding, e.g. "BGC" -> BGC000123. Empty disables.
    import_org_tag_prefix: str = ""
    import_org_tag_width: int = 6
    # Comma-separated canonical sources treated as full snapshots.
    import_snapshot_sources: str = "NINJAONE,NINJAONE_SERVERS,TELUS,ROGERS"
    import_default_carrier: str = "Telus"

    # Live progress feed
    progress_poll_interval_seconds: float = 1.0
    progress_close_delay_seconds: float = 5.0
    progress_retention_seconds: float = 60.0

    # Directory (user lookup) service
    directory_base_url: str | None = None
    directory_token: str | None = None
    directory_timeout_seconds: float = 10.0
    directory_cache_ttl_seconds: int = 300
    # Comma-separated corporate email domains tried before falling back to SAM account lookup.
    directory_email_domains: str = ""

    # Acting identity headers set by the upstream auth proxy
    actor_user_header: str = "X-User-Id"
    actor_role_header: str = "X-User-Role"

    model_config = {"env_prefix": "INV_", "env_file": ".env", "extra": "ignore"}

    @property
    def base_dir(self) -> Path:
        return Path(__file__).resolve().parent

    @property
    def alembic_ini_path(self) -> Path:
        return self.base_dir / "alembic.ini"

    @property
    def snapshot_sources(self) -> frozenset[str]:
        return frozenset(
            item.strip().upper()
            for item in self.import_snapshot_sources.split(",")
            if item.strip()
        )

    @property
    def email_domains(self) -> list[str]:
        return [d.strip().lstrip("@") for d in self.directory_email_domains.split(",") if d.strip()]

    @property
    def directory_configured(self) -> bool:
        return bool(self.directory_base_url)


settings = InventorySettings()
