"""Kernel configuration composition (base defconfig + override fragment)."""

from wlanpi_kernel_builder.kconfig.compose import (
    ComposeResult,
    ConfigComposeError,
    compose_config,
    merge_kconfig,
    parse_kconfig,
    replaced_symbols,
)

__all__ = [
    "ComposeResult",
    "ConfigComposeError",
    "compose_config",
    "merge_kconfig",
    "parse_kconfig",
    "replaced_symbols",
]
