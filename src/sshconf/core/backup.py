"""Timestamp-suffixed backups of an existing SSH configuration tree."""

import os
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

from sshconf.core.config import BACKUP_PREFIX, SshPaths
from sshconf.core.errors import InstallCancelled, ManifestError
from sshconf.core.manifest import read_method
from sshconf.utils.output import info, ok, step, warn


def make_backup_suffix(now: datetime | None = None) -> str:
    """Build the backup suffix, e.g. `.backup.20260118_153000`."""
    now = now or datetime.now()
    return f"{BACKUP_PREFIX}{now.strftime('%Y%m%d_%H%M%S')}"


def needs_backup(paths: SshPaths) -> bool:
    """Check if there is an existing config or config.d to protect."""
    return (
        paths.config_file.exists()
        or paths.config_file.is_symlink()
        or paths.config_d_dir.exists()
        or paths.config_d_dir.is_symlink()
    )


def _free_path(path: Path) -> Path:
    """Return path, or path.N if a backup with the same timestamp exists."""
    candidate = path
    n = 1
    while candidate.exists() or candidate.is_symlink():
        candidate = path.with_name(f"{path.name}.{n}")
        n += 1
    return candidate


@dataclass
class BackupResult:
    """Paths created by a backup run."""

    created: list[Path] = field(default_factory=list)


def backup_tree(paths: SshPaths, suffix: str) -> BackupResult:
    """Back up config, config.d and the manifest using the given suffix.

    - config (file or symlink) is copied; a symlink stays a symlink.
    - config.d as a real directory is copied recursively, symlinks preserved.
    - config.d as a symlink has its target written to `config.d<suffix>.link`.
    - An existing manifest is copied alongside.
    """
    result = BackupResult()

    config_file = paths.config_file
    if config_file.is_symlink():
        backup_file = _free_path(config_file.with_name(config_file.name + suffix))
        os.symlink(os.readlink(config_file), backup_file)
        result.created.append(backup_file)
        ok(f"Backed up config to: {backup_file}")
    elif config_file.is_file():
        backup_file = _free_path(config_file.with_name(config_file.name + suffix))
        shutil.copy2(config_file, backup_file)
        result.created.append(backup_file)
        ok(f"Backed up config to: {backup_file}")

    config_d = paths.config_d_dir
    if config_d.is_symlink():
        backup_link = _free_path(config_d.with_name(config_d.name + suffix + ".link"))
        backup_link.write_text(os.readlink(config_d) + "\n")
        result.created.append(backup_link)
        ok(f"Backed up config.d symlink target to: {backup_link}")
    elif config_d.is_dir():
        backup_dir = _free_path(config_d.with_name(config_d.name + suffix))
        shutil.copytree(config_d, backup_dir, symlinks=True)
        result.created.append(backup_dir)
        ok(f"Backed up config.d to: {backup_dir}")

    manifest = paths.manifest_file
    if manifest.is_file():
        backup_manifest = _free_path(manifest.with_name(manifest.name + suffix))
        shutil.copy2(manifest, backup_manifest)
        result.created.append(backup_manifest)
        info(f"Backed up manifest to: {backup_manifest}")

    return result


def backup_existing_config(
    paths: SshPaths,
    suffix: str,
    *,
    dry_run: bool = False,
    ask: Callable[[str], bool] | None = None,
) -> BackupResult | None:
    """Back up the existing configuration before it is overwritten or removed.

    Args:
        paths: Target SSH paths
        suffix: Backup suffix for this run
        dry_run: Only report what would be backed up
        ask: Confirmation callback; None backs up without asking

    Returns:
        The backup result, or None if nothing was backed up.

    Raises:
        InstallCancelled: If the user declines the backup.
    """
    step("Checking for existing SSH configuration...")

    if not needs_backup(paths):
        info("No existing configuration found (fresh install)")
        return None

    try:
        existing_method = read_method(paths.manifest_file)
    except ManifestError:
        existing_method = None
    if existing_method:
        info(f"Detected existing installation (method: {existing_method})")

    warn("Existing SSH configuration detected")

    if dry_run:
        info("[DRY-RUN] Would backup existing configuration")
        return None

    if ask is not None and not ask("Backup existing configuration?"):
        raise InstallCancelled("Installation cancelled")

    return backup_tree(paths, suffix)
