"""
Configuration loader — reads siliconcraft.yml into ProvisionConfig.

The file is optional: with no file the built-in defaults describe the
standard student workstation setup. Values are resolved in precedence
order:

    environment (WORKSPACE_ROOT, CONTAINER_IMAGE)  >  YAML file  >  defaults
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from siliconcraft.core.errors import ProvisionError
from siliconcraft.core.models.settings import ProvisionConfig, default_workspace_root

logger = logging.getLogger(__name__)

# Default config filename, looked up in the workspace root
CONFIG_FILE = "siliconcraft.yml"

ENV_WORKSPACE_ROOT = "WORKSPACE_ROOT"
ENV_CONTAINER_IMAGE = "CONTAINER_IMAGE"


class ConfigError(ProvisionError):
    """Raised when provisioning configuration is invalid or unreadable."""

    category = "config"
    exit_code = 7
    default_remediation = (
        f"Fix {CONFIG_FILE} or the {ENV_WORKSPACE_ROOT}/{ENV_CONTAINER_IMAGE} "
        "environment variables."
    )


def find_config_file(workspace_root: Path) -> Path | None:
    """Return the workspace's siliconcraft.yml if there is one."""
    candidate = workspace_root / CONFIG_FILE
    return candidate if candidate.is_file() else None


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "provision" key or be flat
    if isinstance(data.get("provision"), dict):
        return dict(data["provision"])
    return data


def load_config(
    path: Path | None = None,
    workspace_root: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> ProvisionConfig:
    """Load and validate provisioning configuration.

    Args:
        path: Explicit path to a YAML file. Must exist when given.
        workspace_root: Explicit root override (e.g. the --workspace-root flag).
            Wins over everything else.
        env: Environment mapping (default: ``os.environ``).

    Returns:
        Validated ProvisionConfig.

    Raises:
        ConfigError: If the file is unreadable or a value is invalid
            (including an unpinned container image).
    """
    env = os.environ if env is None else env

    root_override: Path | None = workspace_root
    if root_override is None and env.get(ENV_WORKSPACE_ROOT):
        root_override = Path(env[ENV_WORKSPACE_ROOT])

    if path is not None:
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path}")
        config_file: Path | None = path
    else:
        search_root = (root_override or default_workspace_root()).expanduser()
        config_file = find_config_file(search_root)

    data: dict[str, Any] = {}
    if config_file is not None:
        logger.debug("Loading provisioning config from %s", config_file)
        data = _read_yaml(config_file)

    if root_override is not None:
        data["workspace_root"] = str(root_override)
    if env.get(ENV_CONTAINER_IMAGE):
        data["container_image"] = env[ENV_CONTAINER_IMAGE]

    try:
        config = ProvisionConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid provisioning configuration: {e}") from e

    logger.info(
        "Workspace %s, image %s", config.workspace_root, config.container_image
    )
    return config
