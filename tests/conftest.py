"""Shared fixtures: a throwaway source repo and SSH directory."""

import os
import stat
from pathlib import Path
from unittest.mock import patch

import pytest

from sshconf.core.config import SshPaths
from sshconf.core.environment import OSType
from sshconf.utils.output import set_quiet

MAIN_CONFIG = """\
Include config.d/*.conf

Host *
    ControlPath ~/.ssh/sockets/%r@%h-%p
"""

FRAGMENTS = {
    "00-defaults.conf": "Host *\n    ServerAliveInterval 60\n",
    "01-workstation-linux.conf": "Host *\n    IdentityFile ~/.ssh/id_ed25519\n",
    "01-workstation-mac.conf": "Host *\n    UseKeychain yes\n",
    "99-example.conf": "Host example\n    HostName example.com\n",
}


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch):
    """Keep tests away from the real settings file, root check and ssh binary."""
    set_quiet(False)
    monkeypatch.delenv("SSHCONF_SOURCE_DIR", raising=False)
    monkeypatch.delenv("SSHCONF_SSH_DIR", raising=False)
    with (
        patch("sshconf.core.config.get_config_dir", return_value=tmp_path / "settings"),
        patch("sshconf.core.installer.is_root", return_value=False),
        patch("sshconf.core.installer.ssh_available", return_value=False),
        patch("sshconf.core.installer.detect_os_type", return_value=OSType.LINUX),
    ):
        yield
    set_quiet(False)


@pytest.fixture
def source_repo(tmp_path: Path) -> Path:
    """Create a source repo with config and config.d fragments."""
    repo = tmp_path / "dotfiles" / "ssh"
    config_d = repo / "config.d"
    config_d.mkdir(parents=True)
    (repo / "config").write_text(MAIN_CONFIG)
    for name, content in FRAGMENTS.items():
        (config_d / name).write_text(content)
    # Not a fragment: must be ignored
    (config_d / "README.md").write_text("notes\n")
    return repo


@pytest.fixture
def ssh_paths(tmp_path: Path) -> SshPaths:
    """SSH paths under a fake home directory (not created yet)."""
    return SshPaths(tmp_path / "home" / ".ssh")


def snapshot(root: Path) -> dict[str, tuple]:
    """Describe every path under root: kind, mode and content or link target."""
    result: dict[str, tuple] = {}
    if not root.exists():
        return result
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            path = Path(dirpath) / name
            rel = str(path.relative_to(root))
            if path.is_symlink():
                result[rel] = ("symlink", os.readlink(path))
            elif path.is_dir():
                result[rel] = ("dir", stat.S_IMODE(path.stat().st_mode))
            else:
                result[rel] = ("file", stat.S_IMODE(path.stat().st_mode), path.read_bytes())
    return result


@pytest.fixture
def snapshot_tree():
    """Expose snapshot() to tests."""
    return snapshot
