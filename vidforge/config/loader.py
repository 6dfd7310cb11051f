import logging
from pathlib import Path
from typing import Optional
import yaml
from vidforge.config.models import AppConfig

logger = logging.getLogger(__name__)

def load_config(config_path: Optional[Path]) -> AppConfig:
    """Loads AppConfig from YAML. A missing file falls back to defaults."""
    if config_path is None or not Path(config_path).exists():
        if config_path is not None:
            logger.warning(f"Config file not found at {config_path}, using defaults.")
        return AppConfig()

    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Failed to read config file {config_path}: {e}") from e

    if data is None:
        return AppConfig()
    if not isinstance(data, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping, got {type(data).__name__}")

    return AppConfig(**data)
