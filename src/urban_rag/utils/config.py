import os
import yaml
from pathlib import Path
from typing import Any, Dict, Optional

# Repository-level config/config.yaml, unless URBAN_RAG_CONFIG points elsewhere
_CONFIG_PATH = Path(__file__).parent.parent.parent.parent / 'config' / 'config.yaml'


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
  """Load the YAML configuration file"""
  config_path = Path(path or os.environ.get('URBAN_RAG_CONFIG', _CONFIG_PATH))
  with open(config_path, 'r', encoding='utf-8') as f:
    return yaml.safe_load(f) or {}


# Automatically load when module is imported
CONFIG = load_config()
