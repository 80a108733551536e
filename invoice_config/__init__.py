"""
invoice_config -- single public entrypoint for invoice kernel configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No kernel component reads configuration files
    or environment variables directly; services receive the resulting
    ``KernelSettings`` through their constructors.

Architecture position:
    Configuration -- YAML-driven, validated at load time.  This package sits
    above ``invoice_kernel``.  The kernel MUST NEVER import from
    ``invoice_config``.

Failure modes:
    - ``FileNotFoundError`` -- configuration file does not exist.
    - ``ValueError`` / ``KeyError`` -- schema or value validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``INVOICE_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying committed invoices to the configuration in force.
"""

from __future__ import annotations

from pathlib import Path

from invoice_config.loader import load_configuration_set
from invoice_config.schema import InvoiceConfigurationSet
from invoice_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | None = None) -> InvoiceConfigurationSet:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a configuration YAML file.
            Defaults to invoice_config/sets/default.yaml.

    Returns:
        InvoiceConfigurationSet whose ``settings`` are passed to the services.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError: If configuration validation fails.
    """
    path = config_path or _DEFAULT_CONFIG_PATH
    config_set = load_configuration_set(path)

    _logger.info(
        "INVOICE_CONFIG_TRACE",
        extra={
            "trace_type": "INVOICE_CONFIG_TRACE",
            "config_id": config_set.config_id,
            "config_version": config_set.version,
            "checksum": config_set.checksum,
            "strict_tax_rates": config_set.settings.strict_tax_rates,
            "config_path": str(path),
        },
    )

    return config_set


__all__ = [
    "InvoiceConfigurationSet",
    "get_active_config",
]
