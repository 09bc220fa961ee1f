"""Main CLI application."""

from pathlib import Path

import typer

from sshconf import __version__
from sshconf.core.config import InstallMethod, SshPaths, load_settings
from sshconf.core.environment import OSType
from sshconf.core.errors import InstallCancelled, SshconfError, VerificationError
from sshconf.core.installer import InstallOptions, InstallReport, Installer
from sshconf.core.uninstaller import Uninstaller
from sshconf.utils.output import console, error, info, panel, section, set_quiet, warn

app = typer.Typer(
    name="sshconf",
    help="Install a modular SSH client configuration (config + config.d).",
    add_completion=False,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)

EPILOG = """\
[bold]Installation methods[/bold]

[cyan]copy[/cyan] (default): independent copies, survive deletion of the source repo,
re-run after updating the repo.

[cyan]symlink[/cyan]: links back to the source repo, live updates on git pull,
break if the repo is moved or deleted.

[bold]Examples[/bold]

  sshconf                          Interactive install (copy mode)
  sshconf --symlink                Install with symlinks
  sshconf --method copy --force    Force copy install
  sshconf --dry-run --symlink      Preview symlink install
  sshconf --uninstall              Remove installation
"""


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"sshconf {__version__}")
        raise typer.Exit()


def resolve_method(method: str | None, symlink: bool, default: InstallMethod) -> InstallMethod:
    """Pick the install method from --method / --symlink / settings.

    Raises:
        typer.Exit: On an invalid or conflicting method.
    """
    if method is None:
        return InstallMethod.SYMLINK if symlink else default

    try:
        chosen = InstallMethod(method.lower())
    except ValueError:
        error(f"Invalid method: {method} (must be 'copy' or 'symlink')")
        raise typer.Exit(1) from None

    if symlink and chosen != InstallMethod.SYMLINK:
        error(f"Cannot use both --symlink and --method {chosen.value}")
        raise typer.Exit(1)
    return chosen


def print_header() -> None:
    panel("[bold]SSH Configuration Installer[/bold]", style="cyan")


def print_post_install_info(
    report: InstallReport, paths: SshPaths, method: InstallMethod, source_dir: Path
) -> None:
    """Show installation details and next steps."""
    panel("[bold]Installation Complete![/bold]", style="green")

    section("Installation Details")
    console.print(f"   Method:   {method.value}", highlight=False)
    console.print(f"   Config:   {paths.config_file}", highlight=False)
    if method == InstallMethod.SYMLINK and paths.config_file.is_symlink():
        console.print(f"             -> {paths.config_file.readlink()}", highlight=False)
    console.print(f"   Modules:  {paths.config_d_dir}", highlight=False)
    console.print(f"   Sockets:  {paths.sockets_dir}", highlight=False)
    console.print(f"   Manifest: {paths.manifest_file}", highlight=False)

    if method == InstallMethod.SYMLINK:
        section("Symlink Mode")
        console.print("   - Live updates from the source repo")
        console.print("   - No need to re-run install after git pull")
        console.print(f"   - Requires the source repo to remain at: {source_dir}", highlight=False)
    else:
        section("Copy Mode")
        console.print("   - Self-contained (survives repo deletion)")
        console.print("   - No dependency on the source repo location")
        console.print("   - Run sshconf again after updating the source repo")

    section("Next Steps")
    console.print("1. Generate an SSH key (if you haven't already):")
    console.print('   [green]ssh-keygen -t ed25519 -C "your-email@example.com"[/green]')
    if report.os_type == OSType.MACOS:
        console.print("2. Add the key to the macOS Keychain:")
        console.print("   [green]ssh-add --apple-use-keychain ~/.ssh/id_ed25519[/green]")
    else:
        console.print("2. Add the key to the SSH agent:")
        console.print('   [green]eval "$(ssh-agent -s)"[/green]')
        console.print("   [green]ssh-add ~/.ssh/id_ed25519[/green]")
    console.print("3. Customize your hosts in:")
    console.print(f"   [green]{paths.config_d_dir / '50-my-hosts.conf'}[/green]", highlight=False)
    console.print("   (copy from 99-example.conf)")
    console.print("4. Test the configuration:")
    console.print("   [green]ssh -G hostname[/green]        # Show effective config")
    console.print("   [green]ssh -T git@github.com[/green]  # Test GitHub")

    if report.backups:
        section("Backup created")
        for backup in report.backups:
            console.print(f"   {backup}", highlight=False)
    console.print()


@app.command(epilog=EPILOG)
def main(
    method: str = typer.Option(
        None, "--method", "-m", help="Installation method: copy or symlink", metavar="METHOD"
    ),
    symlink: bool = typer.Option(False, "--symlink", "-s", help="Shortcut for --method symlink"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation prompts"),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Show what would be done without making changes"
    ),
    uninstall: bool = typer.Option(
        False, "--uninstall", "-u", help="Remove installation (manifest-based)"
    ),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Minimal output"),
    source: Path = typer.Option(
        None, "--source", help="Source repo holding config and config.d/ (default: cwd)"
    ),
    ssh_dir: Path = typer.Option(None, "--ssh-dir", help="Target SSH directory (default: ~/.ssh)"),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Install a modular SSH client configuration (config + config.d).

    Files are copied (default) or symlinked from the source repo into the
    SSH directory. Everything placed is recorded in a manifest so
    [bold]--uninstall[/bold] removes exactly what was installed.
    """
    set_quiet(quiet)
    settings = load_settings()
    chosen = resolve_method(method, symlink, settings.method)

    paths = SshPaths(ssh_dir.expanduser().absolute() if ssh_dir else settings.ssh_dir)
    source_dir = source.expanduser().resolve() if source else settings.source_dir

    if not quiet:
        print_header()

    if uninstall:
        try:
            Uninstaller(paths, dry_run=dry_run, force=force).run()
        except InstallCancelled as e:
            warn(str(e))
            raise typer.Exit(1) from None
        except SshconfError as e:
            error(str(e))
            raise typer.Exit(1) from None
        except OSError as e:
            error(f"Filesystem error: {e}")
            raise typer.Exit(1) from None
        return

    options = InstallOptions(
        method=chosen,
        dry_run=dry_run,
        force=force,
        require_ssh=settings.require_ssh,
        platform_fragments=settings.platform_fragments,
    )
    installer = Installer(source_dir, paths, options)
    try:
        report = installer.run()
    except InstallCancelled as e:
        warn(str(e))
        raise typer.Exit(1) from None
    except VerificationError as e:
        error(str(e))
        error("Installation completed with errors")
        raise typer.Exit(1) from None
    except SshconfError as e:
        error(str(e))
        raise typer.Exit(1) from None
    except OSError as e:
        error(f"Filesystem error: {e}")
        raise typer.Exit(1) from None

    if dry_run:
        info("")
        info("Dry run complete. No changes were made.")
        info("Run without --dry-run to perform actual installation.")
    elif not quiet:
        print_post_install_info(report, paths, chosen, source_dir)


if __name__ == "__main__":
    app()
