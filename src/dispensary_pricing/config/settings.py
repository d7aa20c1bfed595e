"""
Centralized settings and path configuration for the pricing engine.
"""
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


def get_project_root() -> Path:
    """Get the project root directory (where the data/ folder lives)."""
    # Walk up from this file to find the project root
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'data' / 'products.csv').exists() or (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 3 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


def _env_path(name: str, default: Path) -> Path:
    value = os.getenv(name)
    return Path(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path

    # Input files
    products_file: Path
    promotions_csv: Path

    # Output files
    compiled_promotions: Path
    catalog_report: Path

    # Register defaults
    tax_rate: float = 0.0
    default_vendor_id: Optional[str] = None

    # Display only; promotion windows are evaluated in the register's local time
    timezone: str = "America/New_York"
    log_level: str = "INFO"

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the project structure and environment."""
        root = project_root or get_project_root()
        data_dir = root / 'data'

        return cls(
            project_root=root,
            products_file=_env_path('DISPENSARY_PRODUCTS_FILE', data_dir / 'products.csv'),
            promotions_csv=_env_path('DISPENSARY_PROMOTIONS_FILE', data_dir / 'promotions.csv'),
            compiled_promotions=data_dir / 'outputs' / 'compiled_promotions.json',
            catalog_report=data_dir / 'outputs' / 'catalog_report.json',
            tax_rate=_env_float('DISPENSARY_TAX_RATE', 0.0),
            default_vendor_id=os.getenv('DISPENSARY_VENDOR_ID') or None,
            timezone=os.getenv('DISPENSARY_TIMEZONE', 'America/New_York'),
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reset_settings():
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
