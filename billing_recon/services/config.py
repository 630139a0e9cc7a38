"""Runtime configuration for reconciliation runs.

Loads settings from .env file and environment variables with sensible defaults.
Validates required configuration and provides clear error messages.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from billing_recon.services.errors import ConfigError

ENVIRONMENTS = ("dev", "prod")
DEFAULT_RECON_CONFIG_PATH = str(Path(__file__).resolve().parent.parent / "config" / "recon.json")
DEFAULT_LOG_FILE = "logs/reconcile.log"


@dataclass
class RuntimeConfig:
    """Configuration for a single reconciliation or comparison run."""

    environment: str
    """Target environment: dev or prod"""

    database_url: str
    """SQLAlchemy database URL of the billing store"""

    recon_config_path: str = DEFAULT_RECON_CONFIG_PATH
    """Path to reconciliation rules JSON (rates, tolerances, exclusions)"""

    log_file: str = DEFAULT_LOG_FILE
    """Path to log file (default: logs/reconcile.log)"""

    @property
    def is_production(self) -> bool:
        return self.environment == "prod"


def load_config(environment: str = "dev", env_path: str | Path = ".env") -> RuntimeConfig:
    """
    Load configuration from .env file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (DATABASE_URL_DEV, DATABASE_URL_PROD, DATABASE_URL, ...)
    2. .env file in project root
    3. Default values

    Args:
        environment: "dev" or "prod"; selects DATABASE_URL_DEV or DATABASE_URL_PROD
        env_path: Location of the .env file

    Returns:
        RuntimeConfig with all required settings

    Raises:
        ConfigError: If the environment is unknown or no database URL is configured
    """
    if environment not in ENVIRONMENTS:
        raise ConfigError(f"Unknown environment '{environment}'. Use one of: {', '.join(ENVIRONMENTS)}")

    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    url_var = f"DATABASE_URL_{environment.upper()}"
    database_url = os.getenv(url_var) or os.getenv("DATABASE_URL")
    if not database_url:
        raise ConfigError(
            f"{url_var} not configured. "
            f"Set {url_var} (or DATABASE_URL) environment variable or in .env file"
        )

    return RuntimeConfig(
        environment=environment,
        database_url=database_url,
        recon_config_path=os.getenv("RECON_CONFIG_PATH", DEFAULT_RECON_CONFIG_PATH),
        log_file=os.getenv("LOG_FILE", DEFAULT_LOG_FILE),
    )
