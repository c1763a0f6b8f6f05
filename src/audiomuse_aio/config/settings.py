"""Application settings loaded from environment variables and .env files.

Hey future me - nested sections use the ``__`` delimiter in env var names:
``DATASTORE__APP_PASSWORD=secret`` sets ``settings.datastore.app_password``.
Defaults match the all-in-one container layout (everything on localhost,
persistent state under /config).
"""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatastoreSettings(BaseModel):
    """PostgreSQL datastore owned by the container."""

    data_dir: Path = Path("/config/postgres-data")
    bin_dir: Path = Path("/usr/lib/postgresql/14/bin")
    socket_dir: Path = Path("/var/run/postgresql")
    os_user: str | None = "postgres"
    admin_role: str = "postgres"
    app_user: str = "audiomuse"
    app_password: str = "audiomusepassword"
    app_database: str = "audiomusedb"
    host: str = "127.0.0.1"
    port: int = 5432
    marker_file: str = ".audiomuse-initialized"

    @property
    def marker_path(self) -> Path:
        """Path of the file written as the last datastore initialization step."""
        return self.data_dir / self.marker_file


class CacheSettings(BaseModel):
    """Redis cache used by the analysis worker queue."""

    host: str = "127.0.0.1"
    port: int = 6379

    @property
    def url(self) -> str:
        return f"redis://{self.host}:{self.port}/0"


class MusicServerSettings(BaseModel):
    """Subsonic-compatible music server (the primary API service)."""

    url: str = "http://localhost:8080"
    bootstrap_user: str = "admin"
    bootstrap_password: str = "admin"
    service_kind: str = "navidrome"
    timeout: float = 5.0


class AnalysisCoreSettings(BaseModel):
    """Analysis core: the process that consumes the published credential."""

    url: str = "http://localhost:8000"
    process_name: str = "audiomuse-core"
    worker_process_name: str = "audiomuse-worker"
    env_file: Path = Path("/app/audiomuse-core/.env")
    temp_dir: Path = Path("/app/temp_audio")
    timeout: float = 20.0


class BootstrapSettings(BaseModel):
    """Retry bounds and supervisor wiring for the bootstrap sequencer."""

    probe_interval: float = 2.0
    probe_max_attempts: int = 60
    allow_unbounded_probe: bool = False
    concurrent_probes: bool = False
    wait_for_consumer: bool = True
    credential_retry_interval: float = 2.0
    credential_max_attempts: int = 10
    supervisorctl: str = "supervisorctl"
    supervisor_config: Path = Path("/etc/supervisor/conf.d/supervisord.conf")


class TaskSettings(BaseModel):
    """Task lifecycle manager and its persistence."""

    database_url: str = "sqlite+aiosqlite:////config/audiomuse-tasks.db"
    database_echo: bool = False
    remote_poll_interval: float = 3.0
    shutdown_timeout: float = 10.0
    library_paths: list[Path] = Field(default_factory=list)


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    app_name: str = "AudioMuse AIO"
    log_level: str = "INFO"
    log_json_format: bool = False
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    datastore: DatastoreSettings = Field(default_factory=DatastoreSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    music_server: MusicServerSettings = Field(default_factory=MusicServerSettings)
    analysis_core: AnalysisCoreSettings = Field(default_factory=AnalysisCoreSettings)
    bootstrap: BootstrapSettings = Field(default_factory=BootstrapSettings)
    tasks: TaskSettings = Field(default_factory=TaskSettings)


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
