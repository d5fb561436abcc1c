from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_env: str = "dev"
    log_level: str = "INFO"

    # transport
    transport: Literal["stub", "http"] = "stub"
    api_base_url: str = "http://localhost:8080/api/v1"
    api_token: str | None = None
    request_timeout_s: float = 60.0
    upload_chunk_size: int = 64 * 1024

    # progress simulation for single extractions
    simulator_period_s: float = 0.5
    simulator_step: int = 10
    simulator_ceiling: int = 90

    # batch status polling
    poll_initial_delay_s: float = 2.0
    poll_interval_s: float = 3.0
    poll_max_attempts: int = 20

    # read model
    notice_ttl_s: float = 3.0
    default_page_size: int = 5
    default_confidence: float = 0.9
    audit_log_size: int = 1000

    class Config:
        env_file = ".env"
        env_prefix = "OCRFLOW_"
        extra = "ignore"

settings = Settings()
