from pathlib import Path
from typing import Optional

import yaml

from pear_reviewer_core.manifest import DEFAULT_MANIFEST_SUFFIX
from pear_reviewer_core.report import DEFAULT_HEADLINE_WIDTH

DEFAULT_CONFIG: dict = {
    "manifest_suffix": DEFAULT_MANIFEST_SUFFIX,  # files in a helm-charts workspace that pin image sources
    "headline_width": DEFAULT_HEADLINE_WIDTH,  # commit headlines longer than this are cut in the report
    "output": None,  # None = print the report to stdout
}


def load_config(config_path: str = ".pear-reviewer.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .pear-reviewer.yml in the current directory
      3. CLI argument overrides

    API tokens are not part of the config; they are read per host from the
    environment when a client for that host is first needed.
    """
    config = dict(DEFAULT_CONFIG)

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ValueError(f"Config file {config_path} must contain a mapping.")
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    return config
