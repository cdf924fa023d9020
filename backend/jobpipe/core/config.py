from __future__ import annotations
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Nursing Job Pipeline"
    env: str = "dev"
    api_prefix: str = "/api/v1"

    database_url: str = "sqlite+pysqlite:///./jobpipe.db"

    # scraping
    request_timeout_seconds: float = 30.0
    request_retries: int = 3
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    )

    # normalization
    salary_hourly_ceiling: float = 300.0
    salary_annual_floor: float = 15000.0

    # classification
    openai_api_key: str = ""
    classifier_model: str = "gpt-5-nano"
    classifier_max_completion_tokens: int = 1500
    classifier_cost_per_call: float = 0.0011
    classify_batch_size: int = 20
    classify_max_workers: int = 4
    classify_timeout_seconds: float = 60.0

    # publication
    site_url: str = "https://intelliresume.net"
    job_path_prefix: str = "/jobs/nursing"
    indexnow_key: str = ""
    indexnow_endpoints: list[str] = ["https://api.indexnow.org/indexnow"]
    announce_batch_size: int = 50
    announce_batch_delay_seconds: float = 180.0

    # alerts
    alert_webhook_url: str = ""
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_from: str = ""
    admin_email: str = ""

    # logs
    log_dir: str = "logs"
    log_level: str = "INFO"
    log_retention_days: int = 30
    log_tail_lines: int = 20

    # read api
    lookup_negative_cache_seconds: float = 300.0


settings = Settings()
