import os
import logging
from dataclasses import dataclass
from dotenv import load_dotenv, find_dotenv

class ConfigError(Exception):
    """Custom exception for configuration errors."""
    pass

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}

@dataclass
class AppConfig:
    """Application configuration data."""
    database_url: str
    echo_sql: bool = False
    reference_prefix: str = "WO-"
    log_level: str = "INFO"

    @classmethod
    def load(cls) -> 'AppConfig':
        """
        Loads configuration from environment variables.

        Loads .env file first, then checks environment variables.
        Raises ConfigError if required variables are missing.
        """
        dotenv_path = find_dotenv(usecwd=True) # Search in current working directory and upwards
        logger.debug(f"Attempting to load .env file from: {dotenv_path if dotenv_path else 'Not found'}")
        found_dotenv = load_dotenv(dotenv_path=dotenv_path, override=False) # Existing env vars win
        logger.debug(f".env file found: {found_dotenv}")

        database_url = os.environ.get("PRODUCTION_DATABASE_URL")
        echo_sql = os.environ.get("PRODUCTION_ECHO_SQL", "false")
        reference_prefix = os.environ.get("PRODUCTION_REFERENCE_PREFIX", "WO-")
        log_level = os.environ.get("PRODUCTION_LOG_LEVEL", "INFO")

        # Credentials may be embedded in the URL, so only log whether it is set
        logger.debug(f"PRODUCTION_DATABASE_URL from env/dotenv: {'SET' if database_url else 'NOT SET'}")
        logger.debug(f"PRODUCTION_ECHO_SQL from env/dotenv: {echo_sql}")
        logger.debug(f"PRODUCTION_REFERENCE_PREFIX from env/dotenv: {reference_prefix}")

        if not database_url:
            logger.error("PRODUCTION_DATABASE_URL not found in environment variables or .env file")
            raise ConfigError("PRODUCTION_DATABASE_URL not found in environment variables or .env file")

        log_level = log_level.upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ConfigError(f"PRODUCTION_LOG_LEVEL '{log_level}' is not a valid logging level")

        config_instance = cls(
            database_url=database_url,
            echo_sql=echo_sql.strip().lower() in _TRUE_VALUES,
            reference_prefix=reference_prefix,
            log_level=log_level,
        )
        logger.info(
            f"AppConfig loaded: Database URL is SET, echo_sql={config_instance.echo_sql}, "
            f"reference prefix='{config_instance.reference_prefix}', log level={config_instance.log_level}"
        )
        return config_instance
