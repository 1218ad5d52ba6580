"""Build and runtime version information."""

import platform
import sys

_VERSION = "9.9.99"
_BUILD_DATE = "1970-01-01T00:00:00Z"
_GIT_COMMIT = "unknown"
_BINARY_NAME = "argocd-image-updater"


def version() -> str:
    """Return the version string including the short commit."""
    return f"v{_VERSION}+{_GIT_COMMIT[:7]}"


def binary_name() -> str:
    return _BINARY_NAME


def useragent() -> str:
    return f"{binary_name()}: {version()}"


def git_commit() -> str:
    return _GIT_COMMIT


def build_date() -> str:
    return _BUILD_DATE


def runtime_version() -> str:
    """Return the version of the running interpreter."""
    return platform.python_version()


def runtime_platform() -> str:
    """Return the operating system and machine, joined by a slash."""
    return f"{sys.platform}/{platform.machine()}"


def runtime_implementation() -> str:
    """Return the name of the interpreter implementation."""
    return platform.python_implementation()