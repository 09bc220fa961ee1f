"""OpenSSH client helpers."""

from pathlib import Path

from sshconf.utils.process import command_exists, run

# Seconds to wait for `ssh -G` to print the effective configuration
SSH_VALIDATE_TIMEOUT = 15


def ssh_available() -> bool:
    """Check if the OpenSSH client is installed."""
    return command_exists("ssh")


def check_config_syntax(config_file: Path, host: str = "localhost") -> tuple[bool, str]:
    """Validate SSH config syntax by asking ssh to evaluate it.

    `ssh -G` parses the whole configuration (including Include'd fragments)
    and prints the effective options for a host without connecting.

    Args:
        config_file: Config file passed to ssh via -F
        host: Host to evaluate the configuration for

    Returns:
        Tuple of (valid, output) where output is stderr on failure
    """
    result = run(["ssh", "-F", str(config_file), "-G", host], timeout=SSH_VALIDATE_TIMEOUT)
    if result.success:
        return True, result.stdout
    return False, result.stderr.strip()
