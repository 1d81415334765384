from pydantic_settings import BaseSettings

from ai_magellan.__version__ import __version__

APP_VERSION = __version__


class Settings(BaseSettings):
    database_url: str = "sqlite:///./ai_magellan.db"
    environment: str = "development"  # development/production

    # shared secret for the admin health-check endpoints; empty rejects every call
    health_check_token: str = ""

    request_timeout: float = 5.0
    default_batch_limit: int = 50
    max_batch_limit: int = 500
    slow_threshold_ms: int = 3000
    user_agent: str = "AI-Magellan-Bot/1.0 (+https://aimagellan.com/bot)"

    health_check_interval_hours: int = 24
    dead_link_cleanup_interval_days: int = 7
    dead_link_grace_days: int = 7
    dead_link_quality_penalty: int = 20
    scheduler_poll_seconds: int = 60

    seed_file: str = "config/listings.yaml"

    model_config = {
        "env_file": ".env",
        "extra": "ignore"  # Ignore extra environment variables
    }

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


settings = Settings()
