"""
Configuration management for AOV Insights
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Application
    app_name: str = "AOV Insights"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_analysis_runs: bool = True  # Separate file for the engine and orchestrator

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Database
    database_url: str = "sqlite:///./aov_insights.db"

    # Order value analysis defaults (overridable per request)
    aov_min_confidence: float = 0.3
    aov_cluster_band_count: int = 5
    aov_max_affinity_pairs: int = 20
    aov_min_co_occurrence: int = 3  # Sample-size floor for product pairs
    aov_strong_lift: float = 2.0  # Pairs at or above this become bundles
    aov_free_shipping_min_share: float = 0.2
    aov_upsell_skew: float = 1.5  # order share / revenue share

    # Affinity counting is split across workers above this many orders
    aov_affinity_workers: int = 4
    aov_affinity_partition_size: int = 5000

    # Upstream HTTP time limit is 60s
    aov_analysis_timeout_seconds: float = 55.0


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
