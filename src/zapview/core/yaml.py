"""YAML configuration loading.

[load_yaml()][zapview.core.yaml.load_yaml] reads a configuration file with
``yaml.safe_load``; [ZapView.from_yaml()][zapview.services.zap_view.ZapView.from_yaml]
validates the result against
[ZapViewConfig][zapview.services.configs.ZapViewConfig].

Examples:
    ```python
    from zapview.core.yaml import load_yaml

    raw = load_yaml("zapview.yaml")
    raw["views"][0]["identifier"]
    ```
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


def load_yaml(config_path: str | Path) -> dict[str, Any]:
    """Load and parse a YAML configuration file.

    Args:
        config_path: Path to the YAML file (absolute or relative).

    Returns:
        Parsed configuration as a dictionary; an empty file yields ``{}``.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file contains invalid YAML syntax.
        TypeError: If the top-level YAML value is not a mapping.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise TypeError(f"Config file must contain a mapping, got {type(data).__name__}")
    return data
