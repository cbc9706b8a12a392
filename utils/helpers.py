import os
import yaml

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

CONFIG_PATH_ENV = "CRICKET_SCORER_CONFIG_PATH"


def load_config():
    config_path = os.getenv(CONFIG_PATH_ENV) or os.path.join(PROJECT_ROOT, "config", "config.yaml")
    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}
