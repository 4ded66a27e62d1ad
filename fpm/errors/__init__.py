"""
fpm Error Handling
"""

from .exceptions import (
    FpmError,
    ConfigError,
    ResolutionError,
    InvalidRangeError,
    NoMatchingVersionError,
    UpstreamError,
    PackageNotFoundError,
    IntegrityError,
    ArchiveError,
    UnsupportedEntryError,
    UnsafeEntryError,
    GraphError,
    CycleError,
    DuplicateEdgeError,
    VertexNotFoundError,
    ManifestError,
    ManifestNotFoundError,
    MissingDependencyManifestError,
    InstallCancelledError
)

__all__ = [
    'FpmError',
    'ConfigError',
    'ResolutionError',
    'InvalidRangeError',
    'NoMatchingVersionError',
    'UpstreamError',
    'PackageNotFoundError',
    'IntegrityError',
    'ArchiveError',
    'UnsupportedEntryError',
    'UnsafeEntryError',
    'GraphError',
    'CycleError',
    'DuplicateEdgeError',
    'VertexNotFoundError',
    'ManifestError',
    'ManifestNotFoundError',
    'MissingDependencyManifestError',
    'InstallCancelledError'
]
