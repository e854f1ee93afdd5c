"""Application settings loader from YAML configuration."""
import yaml
from pathlib import Path
from dataclasses import dataclass


@dataclass
class AppSettings:
    """Application-wide settings loaded from config.yaml."""

    # App info
    app_name: str
    app_version: str

    # Logging
    log_level: str

    # Processing
    daily_run_time: str
    include_image_attachments: bool
    max_images_per_email: int

    # Gmail
    gmail_max_results: int
    gmail_page_size: int
    gmail_timeout_seconds: int

    # LLM
    llm_model_name: str
    llm_timeout_seconds: int
    extraction_temperature: float
    categorization_temperature: float
    prompt_html_chars: int

    # Storage
    email_html_chars: int
    database_file: str

    # Merchant cache
    merchant_cache_fuzzy_threshold: int
    merchant_cache_min_fuzzy_length: int

    @classmethod
    def load(cls, config_path: Path = None) -> "AppSettings":
        """Load settings from YAML file."""
        if config_path is None:
            config_path = Path(__file__).parent.parent / "resources" / "config.yaml"

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)

        return cls(
            app_name=config["app"]["name"],
            app_version=config["app"]["version"],
            log_level=config["logging"]["level"],
            daily_run_time=str(config["processing"]["daily_run_time"]),
            include_image_attachments=config["processing"]["include_image_attachments"],
            max_images_per_email=config["processing"]["max_images_per_email"],
            gmail_max_results=config["gmail"]["max_results"],
            gmail_page_size=config["gmail"]["page_size"],
            gmail_timeout_seconds=config["gmail"]["timeout_seconds"],
            llm_model_name=config["llm"]["model_name"],
            llm_timeout_seconds=config["llm"]["timeout_seconds"],
            extraction_temperature=config["llm"]["extraction_temperature"],
            categorization_temperature=config["llm"]["categorization_temperature"],
            prompt_html_chars=config["llm"]["prompt_html_chars"],
            email_html_chars=config["storage"]["email_html_chars"],
            database_file=config["storage"]["database_file"],
            merchant_cache_fuzzy_threshold=config["merchant_cache"]["fuzzy_match_threshold"],
            merchant_cache_min_fuzzy_length=config["merchant_cache"]["min_fuzzy_length"]
        )

    def daily_run_hour_minute(self) -> tuple[int, int]:
        hour, minute = self.daily_run_time.split(":")
        return int(hour), int(minute)


# Global settings instance
_settings: AppSettings = None


def get_settings() -> AppSettings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None:
        _settings = AppSettings.load()
    return _settings
