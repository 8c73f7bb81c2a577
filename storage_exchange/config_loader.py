"""YAML configuration loader for storage-exchange.

Reads the storage definitions the registry is built from.

Example YAML (storage.yaml):
    local_storage:
      - name: Temp
        root: /tmp/se-temp
      - name: Local
        root: ./data/local

    azure_storage:
      - name: Cloud1
        account_name: ${AZURE_STORAGE_ACCOUNT}
        account_key: ${AZURE_STORAGE_KEY}
        container_name: exchange

An optional ``storage.<environment>.yaml`` beside the file is merged over
it when an environment is selected; each section it defines replaces the
base file's section of the same name.

Usage:
    from storage_exchange.config_loader import load_storage_options
    options = load_storage_options("./storage.yaml", environment="development")
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import ValidationError

from storage_exchange.config import StorageOptionsBase, parse_storage_options
from storage_exchange.env import expand_options
from storage_exchange.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    "SECTION_TYPES",
    "load_storage_options",
    "overlay_path",
    "parse_config",
]

# Section name -> variant type implied for its entries
SECTION_TYPES = {
    "local_storage": "local",
    "azure_storage": "azure",
    "s3_storage": "s3",
    "storage": None,
}


def overlay_path(path: Path, environment: str) -> Path:
    """Return the environment overlay path for ``path``.

    Example:
        >>> overlay_path(Path("conf/storage.yaml"), "development")
        PosixPath('conf/storage.development.yaml')
    """
    return path.with_name(f"{path.stem}.{environment}{path.suffix}")


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid YAML in {path}: {e}",
            field="path",
            value=path,
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Storage configuration in {path} must be a mapping of sections",
            field="path",
            value=path,
        )
    return data


def _resolve_root(root: str, config_dir: Path) -> str:
    """Resolve relative local roots against the config file location."""
    if os.path.isabs(root) or root.startswith("~") or "$" in root:
        return root
    return str(config_dir / root)


def parse_config(data: Dict[str, Any], config_dir: Optional[Path] = None) -> List[StorageOptionsBase]:
    """Turn a parsed config mapping into validated storage options.

    All invalid entries are reported together.

    Raises:
        ConfigurationError: If any section or entry is invalid
    """
    unknown = sorted(set(data) - set(SECTION_TYPES))
    if unknown:
        logger.warning("Ignoring unknown configuration sections: %s", ", ".join(unknown))

    options: List[StorageOptionsBase] = []
    issues: List[str] = []

    for section, implied_type in SECTION_TYPES.items():
        entries = data.get(section)
        if entries is None:
            continue
        if not isinstance(entries, list):
            issues.append(f"{section}: expected a list of storage entries")
            continue

        for index, entry in enumerate(entries):
            label = f"{section}[{index}]"
            if not isinstance(entry, dict):
                issues.append(f"{label}: expected a mapping")
                continue

            raw = dict(entry)
            if implied_type is not None:
                declared = raw.setdefault("type", implied_type)
                if declared != implied_type:
                    issues.append(f"{label}: type '{declared}' does not belong in {section}")
                    continue
            if raw.get("type") == "local" and config_dir is not None and isinstance(raw.get("root"), str):
                raw["root"] = _resolve_root(raw["root"], config_dir)

            try:
                options.append(parse_storage_options(raw))
            except ValidationError as e:
                name = raw.get("name", "?")
                for error in e.errors():
                    parts = list(error["loc"])
                    # Drop the union tag pydantic prefixes to variant fields
                    if parts and parts[0] == raw.get("type"):
                        parts = parts[1:]
                    loc = ".".join(str(part) for part in parts)
                    issues.append(f"{label} ({name}): {loc}: {error['msg']}")

    if issues:
        raise ConfigurationError("Invalid storage configuration", issues=issues)
    return options


def load_storage_options(
    path: Union[str, Path],
    environment: Optional[str] = None,
    *,
    strict_env: bool = False,
) -> List[StorageOptionsBase]:
    """Load storage options from a YAML file.

    Args:
        path: Path to the base configuration file
        environment: Optional overlay name (e.g. "development")
        strict_env: Fail when a ${VAR} reference is not set

    Returns:
        Validated storage options, in file order

    Raises:
        ConfigurationError: If a file is missing or invalid
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(
            f"Storage configuration file not found: {path}",
            field="path",
            value=path,
            suggestion="Pass --config or set STORAGE_EXCHANGE_CONFIG_PATH",
        )

    data = _read_yaml(path)
    logger.info("Loaded storage configuration from %s", path)

    if environment:
        overlay = overlay_path(path, environment)
        if overlay.exists():
            overlay_data = _read_yaml(overlay)
            data.update(overlay_data)
            logger.info(
                "Applied %s overlay from %s (sections: %s)",
                environment,
                overlay,
                ", ".join(sorted(overlay_data)) or "none",
            )
        else:
            logger.debug("No %s overlay at %s", environment, overlay)

    try:
        data = expand_options(data, strict=strict_env)
    except KeyError as e:
        raise ConfigurationError(
            f"Missing environment variable in {path}: {e.args[0]}",
            field="path",
            value=path,
        ) from e

    return parse_config(data, config_dir=path.parent)
