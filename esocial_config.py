"""
Centralized configuration using Pydantic Settings.
Loads from environment variables and .env file.
"""
import logging
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with environment variable support.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    APP_NAME: str = "esocial-gateway"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 3000

    # Configuração persistida (empregador + certificado)
    CONFIG_FILE: str = "config.json"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    # Serviço de assinatura/transmissão
    TRANSMISSION_URL: Optional[str] = None
    TRANSMISSION_TIMEOUT_SEC: float = 60.0

    # Normalização
    FUTURE_MONTHS_TOLERANCE: int = 1
    BATCH_MAX_EVENTS: int = 50  # limite do eSocial por lote
    BATCH_WORKERS: Optional[int] = None


def configure_logging(config: Settings) -> None:
    """Configura o logging raiz uma única vez (basicConfig ignora chamadas seguintes)."""
    logging.basicConfig(
        filename=config.LOG_FILE,
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s [%(levelname)s] %(message)s'
    )


# Global settings instance
settings = Settings()
