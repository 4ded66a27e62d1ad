"""
fpm Package Manager

Resolves, fetches and installs npm packages and their dependency trees.
"""

from .package_manager import PackageManager
from .registry import RemoteRegistry, RegistryMetadata, VersionManifest
from .resolver import RegistryResolver, resolve_version
from .ranges import VersionRange, parse_version
from .fetcher import ArchiveFetcher
from .extractor import ArchiveExtractor
from .graph import DependencyGraph
from .manifest import Dependency, ProjectManifest, PackageManifest, parse_package_arg
from .installer import PackageInstaller, InstallContext, InstallRecord

__all__ = [
    'PackageManager',
    'RemoteRegistry',
    'RegistryMetadata',
    'VersionManifest',
    'RegistryResolver',
    'resolve_version',
    'VersionRange',
    'parse_version',
    'ArchiveFetcher',
    'ArchiveExtractor',
    'DependencyGraph',
    'Dependency',
    'ProjectManifest',
    'PackageManifest',
    'parse_package_arg',
    'PackageInstaller',
    'InstallContext',
    'InstallRecord'
]
