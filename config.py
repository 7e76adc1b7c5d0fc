"""
SetupDiff - Vehicle Setup Comparison
"""
from pathlib import Path
from pydantic_settings import BaseSettings
from typing import Optional

from core.values import DEFAULT_UNIT_ALIASES


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application Info
    APP_NAME: str = "SetupDiff"
    APP_VERSION: str = "0.4.0"
    DEBUG: bool = False

    # Setup exports
    # Root of the exports tree, laid out as <vehicle>/<track>/<setup>.htm
    SETUPS_DIRECTORY: Optional[str] = None
    SETUP_EXTENSIONS: list[str] = [".htm", ".html"]
    DEFAULT_ENCODING: str = "windows-1252"  # Legacy fallback when UTF-8 fails

    # Comparison
    NUMERIC_EPSILON: float = 1e-9  # Absolute tolerance for "unchanged"
    MAX_COMPARE: int = 8  # Max documents per comparison request
    COMPARE_AGAINST_FIRST: bool = False  # Classify each column against the first one
    UNIT_ALIASES: dict[str, str] = {}  # Extra unit spellings, e.g. {"lbf/in": "lbs/in"}

    # Index
    # "document": key setups by the car and track inside the export
    # "path":     key setups by their <vehicle>/<track>/<name> location
    INDEX_BY: str = "document"

    # File Watching
    WATCH_ENABLED: bool = True
    WATCH_DEBOUNCE_SECONDS: float = 0.3  # Coalesce bursts of events per path
    WATCH_RETRY_SECONDS: float = 5.0  # Delay before re-walking after watcher failure
    WATCH_MAX_RETRIES: int = 3

    # Exported ids are mapped to display names. Track ids are matched on the
    # longest configured prefix, because exports append layout suffixes.
    CAR_NAMES: dict[str, str] = {
        "skip_barber_formula2000": "Skip Barber Formula 2000",
        "mx5_mx52016": "Global Mazda MX-5 Cup",
        "dallarap217": "Dallara P217",
        "porsche911r": "Porsche 911 GT3 R",
    }
    TRACK_NAMES: dict[str, str] = {
        "centripetal": "Centripetal Circuit",
        "charlotte": "Charlotte Motor Speedway",
        "lemans": "Circuit des 24 Heures du Mans",
        "nurburgring_combined": "Nürburgring Combined",
    }

    # CORS - comma-separated list of allowed origins, or "*" for all
    CORS_ORIGINS: str = "*"

    # Maximum request body size in bytes (10MB default)
    MAX_REQUEST_SIZE: int = 10 * 1024 * 1024

    # Paths
    BASE_DIR: Path = Path(__file__).parent

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    def parse_options(self) -> dict:
        """Keyword arguments for the setup parser."""
        return {
            "car_names": self.CAR_NAMES,
            "track_names": self.TRACK_NAMES,
            "unit_aliases": {**DEFAULT_UNIT_ALIASES, **self.UNIT_ALIASES},
            "fallback_encoding": self.DEFAULT_ENCODING,
        }


settings = Settings()
