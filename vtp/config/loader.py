import yaml
from pathlib import Path
from typing import Optional
from .models import AppConfig

def load_config(config_path: Optional[Path]) -> AppConfig:
    """Loads YAML config and parses it into AppConfig Pydantic model.

    ``None`` yields the built-in defaults.
    """
    if config_path is None:
        return AppConfig()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    # Tiers may be written as a mapping keyed by tier name
    tiers = data.get("tiers")
    if isinstance(tiers, dict):
        data["tiers"] = [{"name": name, **(fields or {})} for name, fields in tiers.items()]

    return AppConfig(**data)
