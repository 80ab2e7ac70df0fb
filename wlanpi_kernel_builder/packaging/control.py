"""DEBIAN/control rendering."""

from __future__ import annotations

from dataclasses import dataclass, field

# Field order follows Debian policy examples
FIELD_ORDER = [
    "Package",
    "Version",
    "Section",
    "Priority",
    "Architecture",
    "Maintainer",
    "Conflicts",
    "Replaces",
    "Depends",
]


@dataclass
class ControlFields:
    """Fields of a binary package control file.

    Attributes:
        package: Package name.
        version: Package version.
        architecture: Debian architecture.
        maintainer: Maintainer name and address.
        description: One-line synopsis.
        long_description: Extended description lines.
        section: Archive section.
        priority: Package priority.
        depends: Dependency relations.
        conflicts: Conflicting packages.
        replaces: Replaced packages.
    """

    package: str
    version: str
    architecture: str
    maintainer: str
    description: str
    long_description: list[str] = field(default_factory=list)
    section: str = "kernel"
    priority: str = "optional"
    depends: list[str] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)
    replaces: list[str] = field(default_factory=list)


def _format_long_description(lines: list[str]) -> list[str]:
    # Continuation lines start with a space; empty lines become " ."
    return [f" {line}" if line.strip() else " ." for line in lines]


def render_control(fields: ControlFields) -> str:
    """Render a control file; empty relation fields are omitted.

    Returns:
        Control file text ending with a newline.
    """
    values = {
        "Package": fields.package,
        "Version": fields.version,
        "Section": fields.section,
        "Priority": fields.priority,
        "Architecture": fields.architecture,
        "Maintainer": fields.maintainer,
        "Conflicts": ", ".join(fields.conflicts),
        "Replaces": ", ".join(fields.replaces),
        "Depends": ", ".join(fields.depends),
    }
    lines = [f"{name}: {values[name]}" for name in FIELD_ORDER if values[name]]
    lines.append(f"Description: {fields.description}")
    lines.extend(_format_long_description(fields.long_description))
    return "\n".join(lines) + "\n"


__all__ = ["FIELD_ORDER", "ControlFields", "render_control"]
