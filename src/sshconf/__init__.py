"""Modular SSH client configuration installer."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("sshconf")
except PackageNotFoundError:
    __version__ = "0.0.0.dev"
