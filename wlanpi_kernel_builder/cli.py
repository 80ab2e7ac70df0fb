"""Thin CLI wrapper for wlanpi_kernel_builder.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from wlanpi_kernel_builder import __version__
from wlanpi_kernel_builder.config import get_settings, print_settings_json

app = typer.Typer(
    name="kbuild",
    help="WLAN Pi kernel builder - build and package a Raspberry Pi kernel",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"wlanpi-kernel-builder version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """WLAN Pi kernel builder - build and package a Raspberry Pi kernel."""


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings))
    else:
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Paths:[/bold]")
        console.print(f"  Workspace directory: {settings.workspace_dir}")
        console.print(f"  Source directory:    {settings.source_dir}")
        console.print(f"  Artifacts directory: {settings.artifacts_dir}")
        console.print(f"  Output directory:    {settings.output_dir}")
        console.print(f"  Log file:            {settings.log_file}")
        console.print()
        console.print("[bold]Build:[/bold]")
        console.print(f"  Parallel jobs:       {settings.jobs}")
        console.print(f"  Version stamp:       {settings.version_stamp.value}")
        console.print(f"  Log level:           {settings.log_level}")
        console.print()
        console.print("[bold]Timeouts (seconds):[/bold]")
        console.print(f"  Query timeout:       {settings.query_timeout}")


profile_app = typer.Typer(help="Inspect build profiles")
app.add_typer(profile_app, name="profile")


@profile_app.command("show")
def profile_show(
    path: Annotated[
        str | None,
        typer.Argument(help="Profile file (built-in default when omitted)"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show a build profile with resolved paths."""
    from pydantic import ValidationError

    from wlanpi_kernel_builder.profiles.io import (
        default_profile,
        load_profile,
        profile_to_json_string,
        profile_to_yaml_string,
    )

    try:
        profile = load_profile(Path(path)) if path else default_profile()
    except FileNotFoundError:
        console.print(f"[red]File not found: {path}[/red]")
        raise typer.Exit(code=1) from None
    except (ValidationError, ValueError) as e:
        console.print(f"[red]Invalid profile: {e}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        console.print(profile_to_json_string(profile))
    else:
        console.print(profile_to_yaml_string(profile))


@profile_app.command("validate")
def profile_validate(
    path: Annotated[str, typer.Argument(help="Path to profile file to validate")],
) -> None:
    """Validate a profile file and check its input files exist."""
    from pydantic import ValidationError

    from wlanpi_kernel_builder.profiles.io import load_profile

    file_path = Path(path)
    if not file_path.exists():
        console.print(f"[red]File not found: {path}[/red]")
        raise typer.Exit(code=1)

    try:
        profile = load_profile(file_path)
    except ValidationError as e:
        console.print("[red]Validation failed:[/red]")
        console.print(str(e))
        raise typer.Exit(code=1) from None
    except ValueError as e:
        console.print(f"[red]Validation failed: {e}[/red]")
        raise typer.Exit(code=1) from None

    console.print(f"[green]✓ Valid profile: {profile.name}[/green]")
    console.print(f"  Source: {profile.repo_url} ({profile.branch})")
    console.print(f"  Config: {profile.base_config} + {profile.custom_config}")
    meta = profile.package
    console.print(f"  Package: {meta.name} ({meta.architecture})")
    if not profile.custom_config.is_file():
        console.print(
            "[yellow]Warning: custom config not found: "
            f"{profile.custom_config}[/yellow]"
        )


@app.command()
def build(
    profile_path: Annotated[
        str | None,
        typer.Option("--profile", "-p", help="Build profile (YAML/JSON)"),
    ] = None,
    repo: Annotated[
        str | None,
        typer.Option("--repo", help="Kernel git repository URL"),
    ] = None,
    branch: Annotated[
        str | None,
        typer.Option("--branch", "-b", help="Branch or tag to build"),
    ] = None,
    base_config: Annotated[
        str | None,
        typer.Option("--base-config", help="Base defconfig target"),
    ] = None,
    custom_config: Annotated[
        str | None,
        typer.Option("--custom-config", "-c", help="Config override fragment"),
    ] = None,
    patches_dir: Annotated[
        str | None,
        typer.Option("--patches-dir", help="Directory of *.patch files"),
    ] = None,
    output: Annotated[
        str | None,
        typer.Option("--output", "-o", help="Output directory for .deb files"),
    ] = None,
    workspace: Annotated[
        str | None,
        typer.Option("--workspace", "-w", help="Workspace directory"),
    ] = None,
    headers: Annotated[
        bool | None,
        typer.Option("--headers/--no-headers", help="Also build a headers package"),
    ] = None,
    jobs: Annotated[
        int | None,
        typer.Option("--jobs", "-j", min=1, help="Parallel make jobs"),
    ] = None,
    log_file: Annotated[
        str | None,
        typer.Option("--log-file", help="Log file path"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Print the result as JSON"),
    ] = False,
) -> None:
    """Sync, configure, patch, build and package the kernel."""
    from pydantic import ValidationError

    from wlanpi_kernel_builder.logging_config import configure_logging
    from wlanpi_kernel_builder.pipeline import run_pipeline
    from wlanpi_kernel_builder.profiles.io import default_profile, load_profile

    settings_update: dict[str, object] = {}
    if output:
        settings_update["output_dir"] = Path(output)
    if workspace:
        settings_update["workspace_dir"] = Path(workspace)
    if jobs:
        settings_update["jobs"] = jobs
    if log_file:
        settings_update["log_file"] = Path(log_file)
    settings = get_settings().model_copy(update=settings_update)

    try:
        if profile_path:
            profile = load_profile(Path(profile_path))
        else:
            profile = default_profile()
    except FileNotFoundError:
        console.print(f"[red]Profile not found: {profile_path}[/red]")
        raise typer.Exit(code=1) from None
    except (ValidationError, ValueError) as e:
        console.print(f"[red]Invalid profile: {e}[/red]")
        raise typer.Exit(code=1) from None

    profile_update: dict[str, object] = {}
    if repo:
        profile_update["repo_url"] = repo
    if branch:
        profile_update["branch"] = branch
    if base_config:
        profile_update["base_config"] = base_config
    if custom_config:
        profile_update["custom_config"] = Path(custom_config).resolve()
    if patches_dir:
        profile_update["patches_dir"] = Path(patches_dir).resolve()
    if headers is not None:
        profile_update["headers"] = headers
    profile = profile.model_copy(update=profile_update)

    # stdout carries only the JSON document in --json mode
    log_console = err_console if json_output else console
    configure_logging(settings.log_file, settings.log_level, console=log_console)
    result = run_pipeline(profile, settings)

    if json_output:
        output_data = {
            "success": result.success,
            "version": result.version,
            "release": result.release,
            "packages": [str(p) for p in result.packages],
            "stages": [
                {
                    "stage": s.stage.value,
                    "success": s.success,
                    "message": s.message,
                    "code": s.code,
                }
                for s in result.stages
            ],
        }
        console.print(
            json.dumps(output_data, indent=2),
            soft_wrap=True,
            markup=False,
            highlight=False,
        )

    if not result.success:
        failed = result.failed_stage
        if failed is not None and not json_output:
            console.print(
                f"[red]Stage {failed.stage.value} failed: {failed.message}[/red]"
            )
            console.print(f"See log: {settings.log_file}")
        raise typer.Exit(code=1)

    if not json_output:
        console.print(f"[green]Package version {result.version}[/green]")
        for package in result.packages:
            console.print(f"  {package}")


if __name__ == "__main__":
    app()
