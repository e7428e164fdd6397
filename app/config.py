import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"

SANDBOX_BASE_URL = "https://sandbox.safaricom.co.ke"
PRODUCTION_BASE_URL = "https://api.safaricom.co.ke"

REQUIRED_VARS = (
    "MPESA_SHORTCODE",
    "MPESA_PASSKEY",
    "MPESA_CONSUMER_KEY",
    "MPESA_CONSUMER_SECRET",
    "MPESA_CALLBACK_URL",
)


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class Settings:
    shortcode: str
    passkey: str
    consumer_key: str
    consumer_secret: str
    callback_url: str
    environment: str = "sandbox"
    timezone: str = "Africa/Nairobi"
    timeout: float = 30.0
    database_url: str = "sqlite:///./transactions.db"
    api_prefix: str = ""
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def base_url(self) -> str:
        return PRODUCTION_BASE_URL if self.is_production else SANDBOX_BASE_URL

    @classmethod
    def from_env(cls, env_path: Path = ENV_PATH) -> "Settings":
        """Build settings from the process environment.

        Raises ConfigError listing every missing required variable so the
        service refuses to start instead of failing per request.
        """
        load_dotenv(dotenv_path=env_path)

        missing = [name for name in REQUIRED_VARS if not os.getenv(name, "").strip()]
        if missing:
            raise ConfigError(
                f"Missing required configuration: {', '.join(missing)}. Check your .env file."
            )

        try:
            timeout = float(os.getenv("MPESA_TIMEOUT", "30"))
        except ValueError:
            raise ConfigError("MPESA_TIMEOUT must be a number of seconds")

        origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

        return cls(
            shortcode=os.environ["MPESA_SHORTCODE"].strip(),
            passkey=os.environ["MPESA_PASSKEY"].strip(),
            consumer_key=os.environ["MPESA_CONSUMER_KEY"].strip(),
            consumer_secret=os.environ["MPESA_CONSUMER_SECRET"].strip(),
            callback_url=os.environ["MPESA_CALLBACK_URL"].strip(),
            environment=os.getenv("MPESA_ENV", "sandbox").strip().lower(),
            timezone=os.getenv("MPESA_TIMEZONE", "Africa/Nairobi").strip(),
            timeout=timeout,
            database_url=os.getenv("DATABASE_URL", "sqlite:///./transactions.db"),
            api_prefix=os.getenv("API_PREFIX", "").rstrip("/"),
            cors_origins=origins or ["*"],
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
