"""Virtual npm installer package.

Resolves a manifest's dependencies against an npm-style registry, writes a
virtual node_modules tree through a filesystem collaborator and records the
result in package-lock.json.
"""

from .config import InstallerConfig
from .manager import InstallResult, PackageManager, create_package_manager
from .policy import PolicyConfig, PolicyDecision, PolicyGate
from .virtual_installer import VirtualInstaller

__all__ = [
    "InstallerConfig",
    "InstallResult",
    "PackageManager",
    "create_package_manager",
    "PolicyConfig",
    "PolicyDecision",
    "PolicyGate",
    "VirtualInstaller",
]
