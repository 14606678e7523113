"""
Configuration management for the Bevvi order dashboard
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Bevvi Order Dashboard"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_dir: str = "logs"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 3001
    cors_origins: str = "*"

    # Business timezone for calendar dates derived from instants
    timezone: str = "America/New_York"

    # Upstream Bevvi order API
    bevvi_api_url: str = "https://api.getbevvi.com/api/bevviutils/getAllStoreTransactionsReportCsv"
    bevvi_api_timeout: float = 180.0  # seconds, large ranges are slow
    bevvi_user_agent: str = "Bevvi-Order-Tracking-System/1.0"
    fetch_max_attempts: int = 3
    fetch_base_delay: float = 1.0
    fetch_max_delay: float = 5.0

    # Orders endpoint
    orders_cache_ttl: int = 300
    max_future_days: int = 7
    chunk_threshold_days: int = 90
    chunk_size_days: int = 30

    # Auto-refresh
    auto_refresh_minutes: int = 20
    auto_refresh_attempts: int = 2
    auto_refresh_retry_delay: float = 2.0
    auto_refresh_timeout: float = 30.0

    # Sample orders are a demo fixture, never a silent fallback
    use_sample_orders: bool = False

    # LLM prompt parsing
    anthropic_api_key: Optional[str] = None
    llm_model: str = "claude-sonnet-4-20250514"
    prompt_parser_max_tokens: int = 150
    prompt_parser_temperature: float = 0.1

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
