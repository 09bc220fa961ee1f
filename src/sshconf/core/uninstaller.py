"""Remove an installation using its manifest."""

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from sshconf.core.backup import backup_existing_config, make_backup_suffix
from sshconf.core.config import SshPaths
from sshconf.core.errors import InstallCancelled
from sshconf.core.manifest import EntryKind, Manifest, read_manifest, remove_manifest
from sshconf.utils.output import confirm, info, item, ok, step, warn


@dataclass
class UninstallReport:
    """What an uninstall run removed."""

    removed: list[Path] = field(default_factory=list)
    skipped_dirs: list[Path] = field(default_factory=list)
    backups: list[Path] = field(default_factory=list)
    legacy: bool = False


@dataclass
class RemovalPlan:
    """Manifest paths that still exist and will be removed."""

    files: list[Path] = field(default_factory=list)
    dirs: list[Path] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.files and not self.dirs


def plan_removal(manifest: Manifest, paths: SshPaths) -> RemovalPlan:
    """Select manifest entries that still exist.

    The SSH directory itself is never removed, and entries pointing outside
    it are skipped with a warning. Directories are ordered deepest first.
    """
    plan = RemovalPlan()
    for entry in manifest.entries:
        path = Path(os.path.normpath(entry.path))
        if not paths.contains(path):
            warn(f"Ignoring manifest entry outside {paths.ssh_dir}: {path}")
            continue

        if entry.kind in (EntryKind.FILE, EntryKind.SYMLINK):
            if (path.exists() or path.is_symlink()) and path not in plan.files:
                plan.files.append(path)
        elif entry.kind == EntryKind.DIR:
            if path == paths.ssh_dir:
                continue
            if path.is_dir() and not path.is_symlink() and path not in plan.dirs:
                plan.dirs.append(path)

    plan.dirs.sort(key=lambda p: len(p.parts), reverse=True)
    return plan


class Uninstaller:
    """Removes exactly what the manifest records.

    Without a manifest, falls back to removing config and config.d
    wholesale (legacy installs). A backup is always made before anything
    is removed.
    """

    def __init__(
        self,
        paths: SshPaths,
        *,
        dry_run: bool = False,
        force: bool = False,
        confirm_fn: Callable[[str, bool], bool] = confirm,
    ) -> None:
        self.paths = paths
        self.dry_run = dry_run
        self.force = force
        self.confirm_fn = confirm_fn
        self.backup_suffix = make_backup_suffix()
        self.report = UninstallReport()

    def ask(self, prompt: str, default: bool = False) -> bool:
        """Ask for confirmation; --force answers yes."""
        if self.force:
            return True
        return self.confirm_fn(prompt, default)

    def run(self) -> UninstallReport:
        """Uninstall.

        Raises:
            InstallCancelled: If the user declines removal.
        """
        step("Uninstalling SSH configuration...")

        manifest = read_manifest(self.paths.manifest_file)
        if manifest is None:
            warn("No manifest found. Falling back to standard uninstall...")
            self.report.legacy = True
            self.run_legacy()
            return self.report

        info(f"Detected installation method: {manifest.method or 'unknown'}")
        plan = plan_removal(manifest, self.paths)

        warn("The following will be removed:")
        for path in plan.files:
            item(str(path))
        for path in plan.dirs:
            item(f"{path}/")
        item(f"{self.paths.manifest_file} (manifest)")

        if plan.empty:
            info("No files found to remove (already clean)")
            if not self.dry_run:
                remove_manifest(self.paths.manifest_file)
            return self.report

        if self.dry_run:
            info(
                f"[DRY-RUN] Would remove {len(plan.files)} files "
                f"and {len(plan.dirs)} directories"
            )
            return self.report

        if not self.ask("Remove these files?", False):
            raise InstallCancelled("Uninstall cancelled")

        self._backup()

        for path in plan.files:
            if path.is_symlink():
                path.unlink()
                ok(f"Removed symlink: {path}")
            elif path.is_file():
                path.unlink()
                ok(f"Removed file: {path}")
            else:
                continue
            self.report.removed.append(path)

        for path in plan.dirs:
            if not path.is_dir():
                continue
            try:
                path.rmdir()
            except OSError:
                warn(f"Directory not empty, skipping: {path}")
                self.report.skipped_dirs.append(path)
                continue
            ok(f"Removed directory: {path}")
            self.report.removed.append(path)

        remove_manifest(self.paths.manifest_file)
        ok("Uninstallation complete (backup created)")
        return self.report

    def run_legacy(self) -> None:
        """Remove config and config.d for installs without a manifest."""
        config_file = self.paths.config_file
        config_d = self.paths.config_d_dir

        has_config = config_file.exists() or config_file.is_symlink()
        has_config_d = config_d.is_dir() or config_d.is_symlink()

        if not has_config and not has_config_d:
            info("No installation found to remove")
            return

        warn("This will remove:")
        if has_config:
            item(str(config_file))
        if has_config_d:
            item(str(config_d))

        if self.dry_run:
            info("[DRY-RUN] Would remove configuration")
            return

        if not self.ask("Are you sure you want to uninstall?", False):
            raise InstallCancelled("Uninstall cancelled")

        self._backup()

        if has_config:
            config_file.unlink()
            self.report.removed.append(config_file)
        if has_config_d:
            if config_d.is_symlink():
                config_d.unlink()
            else:
                shutil.rmtree(config_d)
            self.report.removed.append(config_d)

        ok("Uninstallation complete (backup created)")

    def _backup(self) -> None:
        result = backup_existing_config(self.paths, self.backup_suffix)
        if result is not None:
            self.report.backups.extend(result.created)
