"""Kernel configuration composition.

Produces the resolved .config for a build:
1. Optionally clean the tree (`make mrproper`)
2. Load the base defconfig (`make <base_config>`)
3. Merge the override fragment (`scripts/kconfig/merge_config.sh -m`)
4. Normalize (`make olddefconfig`)

After normalization the fragment's requested values are compared with the
resolved config and anything dependency resolution changed is reported.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from wlanpi_kernel_builder.builds.runner import (
    CommandError,
    compose_make_command,
    kernel_env,
    run_command,
)
from wlanpi_kernel_builder.errors import PipelineError
from wlanpi_kernel_builder.types import ErrorCategory

logger = logging.getLogger(__name__)

MERGE_CONFIG_SCRIPT = "scripts/kconfig/merge_config.sh"

_SET_PATTERN = re.compile(r"^(CONFIG_[A-Za-z0-9_]+)=(.*)$")
_UNSET_PATTERN = re.compile(r"^# (CONFIG_[A-Za-z0-9_]+) is not set$")


class ConfigComposeError(PipelineError):
    """Raised when the build configuration cannot be produced."""

    def __init__(
        self,
        message: str,
        code: str = "config_error",
        category: ErrorCategory = ErrorCategory.TOOL,
    ) -> None:
        super().__init__(message, code=code, category=category)


@dataclass
class ComposeResult:
    """Outcome of configuration composition.

    Attributes:
        config_path: Resolved .config in the source tree.
        replaced: Base defconfig symbols the fragment changed, mapped to
            (base, fragment).
        overridden: Fragment symbols whose requested value did not survive
            normalization, mapped to (requested, resolved).
    """

    config_path: Path
    replaced: dict[str, tuple[str, str]] = field(default_factory=dict)
    overridden: dict[str, tuple[str, str]] = field(default_factory=dict)


def parse_kconfig(text: str) -> dict[str, str]:
    """Parse .config / fragment text into a symbol map.

    `# CONFIG_FOO is not set` lines map to "n". Other comments and blank
    lines are ignored. Later assignments win.
    """
    symbols: dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if m := _SET_PATTERN.match(line):
            symbols[m.group(1)] = m.group(2)
        elif m := _UNSET_PATTERN.match(line):
            symbols[m.group(1)] = "n"
    return symbols


def merge_kconfig(base: dict[str, str], override: dict[str, str]) -> dict[str, str]:
    """Overlay override onto base; override wins on conflicting symbols."""
    merged = dict(base)
    merged.update(override)
    return merged


def replaced_symbols(
    base: dict[str, str],
    override: dict[str, str],
) -> dict[str, tuple[str, str]]:
    """Symbols whose base value the override changes, as (base, merged)."""
    merged = merge_kconfig(base, override)
    return {
        symbol: (value, merged[symbol])
        for symbol, value in base.items()
        if merged[symbol] != value
    }


def unresolved_overrides(
    requested: dict[str, str],
    resolved: dict[str, str],
) -> dict[str, tuple[str, str]]:
    """Find requested values that the resolved config does not carry.

    Symbols missing from the resolved config count as "n".

    Returns:
        Mapping of symbol to (requested, resolved) for each mismatch.
    """
    mismatches: dict[str, tuple[str, str]] = {}
    for symbol, value in requested.items():
        actual = resolved.get(symbol, "n")
        if actual != value:
            mismatches[symbol] = (value, actual)
    return mismatches


def _read_config_text(path: Path) -> str:
    # Kconfig files are not guaranteed to be UTF-8; symbol lines are ASCII.
    return path.read_text(encoding="utf-8", errors="replace")


def compose_config(
    source_dir: Path,
    base_config: str,
    custom_config: Path,
    arch: str,
    cross_compile: str | None = None,
    clean: bool = False,
) -> ComposeResult:
    """Produce a normalized .config from base_config plus custom_config.

    Args:
        source_dir: Kernel working tree.
        base_config: defconfig target name (e.g., 'bcm2711_defconfig').
        custom_config: Override fragment path.
        arch: Kernel ARCH value.
        cross_compile: CROSS_COMPILE prefix.
        clean: Run `make mrproper` first.

    Returns:
        ComposeResult with the config path and any overridden symbols.

    Raises:
        ConfigComposeError: If the fragment is missing or any make step
            fails (including an unknown base_config).
    """
    if not custom_config.is_file():
        raise ConfigComposeError(
            f"Custom config file {custom_config} not found",
            code="custom_config_missing",
            category=ErrorCategory.ENVIRONMENT,
        )

    env = kernel_env(arch, cross_compile)
    config_path = source_dir / ".config"

    try:
        if clean:
            logger.info("Cleaning previous builds...")
            run_command(compose_make_command("mrproper"), cwd=source_dir, env=env)

        logger.info("Loading base config: %s...", base_config)
        run_command(compose_make_command(base_config), cwd=source_dir, env=env)
        base = (
            parse_kconfig(_read_config_text(config_path))
            if config_path.is_file()
            else {}
        )

        logger.info("Merging custom config: %s...", custom_config.name)
        run_command(
            [f"./{MERGE_CONFIG_SCRIPT}", "-m", ".config", str(custom_config)],
            cwd=source_dir,
            env=env,
        )

        logger.info("Normalizing merged config (olddefconfig)...")
        run_command(compose_make_command("olddefconfig"), cwd=source_dir, env=env)
    except CommandError as e:
        raise ConfigComposeError(str(e), code="make_config_failed") from e

    if not config_path.is_file():
        raise ConfigComposeError(
            f"Configuration was not produced at {config_path}",
            code="config_missing",
            category=ErrorCategory.VERIFICATION,
        )

    requested = parse_kconfig(_read_config_text(custom_config))
    resolved = parse_kconfig(_read_config_text(config_path))
    replaced = replaced_symbols(base, requested)
    for symbol, (old, new) in sorted(replaced.items()):
        logger.debug("%s: base %s replaced by %s", symbol, old, new)
    overridden = unresolved_overrides(requested, resolved)
    for symbol, (wanted, actual) in sorted(overridden.items()):
        logger.warning(
            "%s requested as %s but resolved to %s", symbol, wanted, actual
        )

    logger.info(
        "Configuration ready (%d symbols, %d from fragment, %d replacing base)",
        len(resolved),
        len(requested),
        len(replaced),
    )
    return ComposeResult(
        config_path=config_path,
        replaced=replaced,
        overridden=overridden,
    )


__all__ = [
    "MERGE_CONFIG_SCRIPT",
    "ComposeResult",
    "ConfigComposeError",
    "compose_config",
    "merge_kconfig",
    "parse_kconfig",
    "replaced_symbols",
    "unresolved_overrides",
]
