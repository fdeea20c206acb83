"""
rental_config -- settings for the daily batch.

Responsibility:
    ``load_settings()`` is the single way to obtain runtime settings.  It
    reads a YAML file (explicit path, then ``RENTAL_CONFIG``, then the
    bundled ``settings.yaml``) and overlays environment overrides.

Architecture position:
    Configuration -- sits beside rental_kernel and below rental_batch.
    The kernel and engines never import from here.

Failure modes:
    - ConfigurationError for a missing file, bad YAML or invalid value.

Audit relevance:
    Every load emits a ``RENTAL_CONFIG_TRACE`` record with the source path
    and the settings checksum.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from rental_kernel.logging_config import get_logger
from rental_config.loader import (
    apply_environment,
    compute_checksum,
    load_yaml_file,
    parse_settings,
)
from rental_config.schema import (
    NotificationSettings,
    RentalSettings,
    RetentionSettings,
)

_logger = get_logger("config")

ENV_CONFIG_PATH = "RENTAL_CONFIG"
DEFAULT_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> RentalSettings:
    """Load settings from YAML and apply environment overrides."""
    env = os.environ if environ is None else environ
    source = Path(path or env.get(ENV_CONFIG_PATH) or DEFAULT_SETTINGS_PATH)

    settings = apply_environment(parse_settings(load_yaml_file(source)), env)

    _logger.info(
        "RENTAL_CONFIG_TRACE",
        extra={
            "trace_type": "RENTAL_CONFIG_TRACE",
            "source": str(source),
            "checksum": compute_checksum(settings),
        },
    )
    return settings


__all__ = [
    "DEFAULT_SETTINGS_PATH",
    "NotificationSettings",
    "RentalSettings",
    "RetentionSettings",
    "load_settings",
]
