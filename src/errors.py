"""Exception types raised by the registry client, resolver and installer."""

from __future__ import annotations

from typing import Any, List, Optional, Sequence


class InstallerError(Exception):
    """Base class for all installer errors."""


class ConfigError(InstallerError):
    """Invalid or unreadable configuration."""


class NoManifestError(InstallerError):
    """No package.json and no explicit package list."""

    def __init__(self, cwd: str):
        self.cwd = cwd
        super().__init__(f"No package.json found in {cwd} and no packages specified")


class RegistryUnavailable(InstallerError):
    """Registry metadata could not be fetched for one package."""

    def __init__(self, name: str, status: int, reason: Optional[str] = None):
        self.name = name
        self.status = status
        self.reason = reason
        detail = f"HTTP {status}" if status else "no response"
        if reason:
            detail = f"{detail}: {reason}"
        super().__init__(f"Failed to fetch package metadata for {name} ({detail})")


class VersionNotFound(InstallerError):
    """The selected version is missing from the package document."""

    def __init__(self, name: str, version: Optional[str]):
        self.name = name
        self.version = version
        super().__init__(f"Version {version} not found for package {name}")


class FileSystemWriteError(InstallerError):
    """A filesystem write failed while materializing packages or the lockfile."""

    def __init__(self, path: str, cause: BaseException):
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to write {path}: {cause}")


class CircularDependencyError(InstallerError):
    """A dependency cycle was found and cycle detection is enabled."""

    def __init__(self, cycle: Sequence[str]):
        self.cycle: List[str] = list(cycle)
        super().__init__(f"Detected circular dependency: {' -> '.join(self.cycle)}")


class PolicyViolation(InstallerError):
    """The install policy gate rejected the request."""

    def __init__(self, violations: Sequence[str]):
        self.violations: List[str] = list(violations)
        super().__init__("Install blocked by policy: " + "; ".join(self.violations))


class InstallCancelled(InstallerError):
    """Resolution was cancelled; ``partial`` holds what was resolved so far."""

    def __init__(self, partial: Any):
        self.partial = partial
        super().__init__(f"Install cancelled after resolving {len(partial)} package(s)")


class InvalidPackageName(InstallerError):
    """A package name cannot be used as a node_modules directory."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Invalid package name: {name!r}")
