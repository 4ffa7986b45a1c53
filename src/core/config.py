"""
Centralised service settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)

_QUERIES_DIR = Path(__file__).resolve().parents[2] / "queries"


class Settings(BaseSettings):
    # ── Google service account ───────────────────────────
    google_client_email: str = ""
    google_private_key: str = ""
    google_project_id: str = ""
    bigquery_location: str = "US"

    # ── Query catalog & execution ────────────────────────
    queries_dir: Path = _QUERIES_DIR
    result_size_budget: float = 1024 * 1024 * 0.9  # bytes of JSON per response
    truncation_sample_rows: int = 10
    default_domainkey: str = "secret"

    # ── Result archive (S3) ──────────────────────────────
    archive_bucket: str = ""  # empty disables archiving
    stored_queries: list[str] = ["rum-pageviews"]
    internal_invoker: str = "helix3/admin"

    # ── Audit log ────────────────────────────────────────
    audit_database_url: str = ""  # empty disables the audit log

    # ── App ──────────────────────────────────────────────
    api_port: int = 8000
    chart_service_url: str = "https://quickchart.io/chart"
    log_level: str = "INFO"

    @property
    def private_key(self) -> str:
        """The service-account key with escaped newlines restored."""
        return self.google_private_key.replace("\\n", "\n")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
