import json
import os
import logging
from .types import AppConfig

def load_config(config_path: str = "p2p_config.json") -> AppConfig:
    """
    Loads store location, default pair and log level.
    Missing or broken config files fall back to defaults. Ensures the store directory exists.
    """
    config = AppConfig()

    if os.path.exists(config_path):
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)

            if not isinstance(data, dict):
                raise ValueError("Top level must be an object")

            config.store_dir = data.get("store_dir", config.store_dir)
            config.error_log_dir = data.get("error_log_dir", config.error_log_dir)
            config.ledger_key = data.get("ledger_key", config.ledger_key)

            # Symbols are compared exactly by the engine, keep them canonical
            config.default_asset = str(data.get("default_asset", config.default_asset)).upper()
            config.default_fiat = str(data.get("default_fiat", config.default_fiat)).upper()

            level = str(data.get("log_level", config.log_level)).upper()
            if level in ("DEBUG", "INFO", "WARNING", "ERROR"):
                config.log_level = level
            else:
                logging.warning(f"Unknown log_level '{level}', keeping {config.log_level}")

        except (json.JSONDecodeError, ValueError, OSError) as e:
            logging.error(f"Failed to load config file {config_path}: {e}")
            config = AppConfig()
    else:
        logging.info(f"Config file {config_path} not found. Using defaults.")

    os.makedirs(config.store_dir, exist_ok=True)

    return config
