"""
InvoiceConfigurationSet schema.

The human-authored, reviewable source artifact for invoice kernel
configuration.  YAML files are parsed into these types by the loader; the
kernel only ever sees the ``KernelSettings`` carried inside.
"""

from __future__ import annotations

from dataclasses import dataclass

from invoice_kernel.domain.settings import KernelSettings


@dataclass(frozen=True)
class InvoiceConfigurationSet:
    """A versioned configuration set and the settings it defines."""

    config_id: str
    version: int
    settings: KernelSettings
    checksum: str = ""
