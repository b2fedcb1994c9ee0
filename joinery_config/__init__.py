"""
joinery_config -- single public entrypoint for lifecycle configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files directly.

Architecture position:
    Configuration -- sits above ``joinery_kernel`` and beside
    ``joinery_engines``.  Engines never import this package; services
    translate ``LifecycleConfig`` into the engines' ``ReconciliationPolicy``.

Failure modes:
    - ``FileNotFoundError`` -- the requested YAML file does not exist.
    - ``ValueError`` -- schema or range validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``JOINERY_CONFIG_TRACE`` log entry with the config id, version and
    checksum.
"""

from __future__ import annotations

from pathlib import Path

from joinery_config.loader import compute_checksum, load_yaml_file, parse_lifecycle_config
from joinery_config.schema import LifecycleConfig
from joinery_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> LifecycleConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: YAML file to load.  Defaults to the packaged defaults.yaml.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If a value is out of range or malformed.
    """
    source = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = parse_lifecycle_config(load_yaml_file(source))

    _logger.info(
        "JOINERY_CONFIG_TRACE",
        extra={
            "trace_type": "JOINERY_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(source),
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "LifecycleConfig",
    "compute_checksum",
    "get_active_config",
    "load_yaml_file",
    "parse_lifecycle_config",
]
