"""
IntentProof Project Configuration.

Per-project defaults stored in .intentproof/config.json. Values here seed
the IntentOptions of every intent loaded for the project; an intent file's
own ``options`` block overrides them.
"""

import json
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Literal

from intentproof.models import IntentOptions

logger = logging.getLogger(__name__)


FileFormat = Literal["json", "yaml"]

CONFIG_DIR = ".intentproof"


@dataclass
class ProjectConfig:
    """Project-level configuration."""
    options: IntentOptions = field(default_factory=IntentOptions)

    # Format written by `intentproof init`
    default_format: FileFormat = "json"

    def to_dict(self) -> dict:
        return {
            "options": self.options.to_dict(),
            "default_format": self.default_format,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProjectConfig":
        return cls(
            options=IntentOptions.from_dict(data.get("options", {})),
            default_format=data.get("default_format", "json"),
        )

    def to_options(self, overrides: Dict[str, Any] = None) -> IntentOptions:
        """Build IntentOptions from the defaults plus per-intent overrides."""
        if not overrides:
            return replace(self.options)
        merged = self.options.to_dict()
        merged.update(overrides)
        return IntentOptions.from_dict(merged)


def get_config_path(project_path: str) -> Path:
    """Get the config file path for a project."""
    return Path(project_path) / CONFIG_DIR / "config.json"


def load_config(project_path: str) -> ProjectConfig:
    """Load project configuration.

    A missing file gives the defaults. A file that is not a JSON object
    with an ``options`` mapping is ignored with a warning. Option values
    are not range-checked here; they are validated once merged with an
    intent's own options.
    """
    config_file = get_config_path(project_path)
    if not config_file.exists():
        return ProjectConfig()

    try:
        data = json.loads(config_file.read_text())
        if not isinstance(data, dict) or not isinstance(data.get("options", {}), dict):
            raise ValueError("expected an object with an 'options' mapping")
        return ProjectConfig.from_dict(data)
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable config {config_file}: {e}")
        return ProjectConfig()


def save_config(project_path: str, config: ProjectConfig) -> Path:
    """Write the config, creating the config directory. Returns its path."""
    config_file = get_config_path(project_path)
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config.to_dict(), indent=2) + "\n")
    return config_file
