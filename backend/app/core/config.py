from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_name: str = "Price Wizard"
    debug: bool = False
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"
    log_json: bool = False

    # Database
    database_url: str = "postgresql+asyncpg://pw:pw@localhost:5432/price_wizard"

    # Persona evaluators (provider: google | openai | anthropic)
    llm_provider: str = "google"
    llm_model: str = ""  # auto-defaults per provider if empty
    llm_temperature: float = 0.2
    google_ai_api_key: str = ""
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    evaluator_timeout_seconds: float = 60.0

    # Page renderer (Playwright / Chromium)
    scraper_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    )
    scraper_navigation_timeout_seconds: float = 30.0
    scraper_settle_delay_seconds: float = 2.0
    scraper_headless: bool = True
    scraper_max_concurrent_pages: int = 3
    scraper_browser_args: list[str] = [
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        "--disable-gpu",
    ]

    # Defaults for companies / tiers created from a scrape
    default_company_industry: str = "Technology"
    default_company_size: str = "Enterprise"
    default_tier_name: str = "Professional"
    default_tier_features: str = "Advanced features for professional use"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
