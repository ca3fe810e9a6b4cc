# clientsplus/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
import logging
from pathlib import Path

# Configure logging for settings module
logger = logging.getLogger(__name__)
if not logging.getLogger().hasHandlers():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(name)s - [%(levelname)s] - %(message)s'
    )

# This settings.py file is at <project>/clientsplus/settings.py
PROJECT_ROOT = Path(__file__).parent.parent.resolve()
DOTENV_PATH = PROJECT_ROOT / ".env"

if DOTENV_PATH.exists():
    logger.debug(f"SETTINGS: .env file found at {DOTENV_PATH}")
else:
    logger.debug(f"SETTINGS: no .env file at {DOTENV_PATH}. Relying on OS env vars or defaults.")


class Settings(BaseSettings):
    """Library settings with environment variable support."""

    app_name: str = "ClientsPlus"
    debug_mode: bool = False
    log_level: str = "INFO"
    locale: str = Field(default="en", description="Locale for user-facing failure messages ('en' or 'ar').")

    # Durable tier backend: "sqlite", "redis" or "memory"
    storage_backend: str = "sqlite"
    sqlite_db_path: str = "./clientsplus_data.sqlite3"

    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None
    redis_ssl: bool = False

    encryption_key: Optional[str] = Field(
        default=None,
        description="Fernet key for encrypting values in the durable tier. Plaintext when unset."
    )

    # Backend endpoints
    api_base_url: str = "http://localhost:3000/api"
    functions_base_url: str = "http://localhost:5001/clients-plus/us-central1"
    request_timeout_seconds: float = 30.0

    # Token lifecycle
    token_expiry_margin_seconds: int = 300
    token_check_interval_seconds: float = 60.0

    # Real-time connection
    realtime_health_interval_seconds: float = 10.0
    realtime_updates_default: bool = True

    # Client portal OTP
    otp_provider: str = Field(default="http", description="'http' for the backend provider, 'fixed' for local development.")
    otp_fixed_code: str = "123456"
    otp_resend_cooldown_seconds: int = 60

    superadmin_session_max_age_seconds: int = 24 * 60 * 60

    model_config = SettingsConfigDict(
        env_prefix="CLIENTSPLUS_",
        env_file=DOTENV_PATH if DOTENV_PATH.exists() else None,
        extra="ignore",
        env_file_encoding='utf-8'
    )


# Initialize settings instance
settings = Settings()

logger.debug(
    f"SETTINGS: storage_backend='{settings.storage_backend}', otp_provider='{settings.otp_provider}', "
    f"encryption_key={'********' if settings.encryption_key else 'None'}, locale='{settings.locale}'"
)
