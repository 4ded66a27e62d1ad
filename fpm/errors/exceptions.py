"""
fpm Exception Classes

Every failure the package manager reports derives from FpmError so the CLI
can print it uniformly. Where a failure concerns one package the name is kept
on the exception.
"""

from typing import Optional


class FpmError(Exception):
    """Base exception for fpm errors"""

    def __init__(self, message: str, package: Optional[str] = None):
        super().__init__(message)
        self.package = package


class ConfigError(FpmError):
    """Configuration file could not be read"""
    pass


# Resolution

class ResolutionError(FpmError):
    """A version range could not be turned into a concrete version"""
    pass


class InvalidRangeError(ResolutionError):
    """Version range expression is not parseable"""

    def __init__(self, version_range: str, package: Optional[str] = None):
        where = f" for {package}" if package else ""
        super().__init__(f"Invalid version range{where}: {version_range!r}", package)
        self.version_range = version_range


class NoMatchingVersionError(ResolutionError):
    """No published version satisfies the requested range"""

    def __init__(self, package: str, version_range: str):
        super().__init__(
            f"No version of {package} satisfies {version_range!r}", package
        )
        self.version_range = version_range


# Network

class UpstreamError(FpmError):
    """Registry or tarball host answered with a failure"""

    def __init__(self, message: str, package: Optional[str] = None,
                 status: Optional[int] = None):
        super().__init__(message, package)
        self.status = status


class PackageNotFoundError(UpstreamError):
    """Registry has no package with the requested name"""

    def __init__(self, package: str):
        super().__init__(f"Package not found in registry: {package}", package, 404)


class IntegrityError(FpmError):
    """Downloaded archive does not match the published checksum"""

    def __init__(self, url: str, expected: str, actual: str,
                 package: Optional[str] = None):
        super().__init__(
            f"Checksum mismatch for {url}: expected {expected}, got {actual}",
            package
        )
        self.url = url
        self.expected = expected
        self.actual = actual


# Archives

class ArchiveError(FpmError):
    """Archive could not be unpacked"""
    pass


class UnsupportedEntryError(ArchiveError):
    """Archive contains an entry that is neither a directory nor a regular file"""

    def __init__(self, entry: str, kind: str, package: Optional[str] = None):
        super().__init__(f"Unsupported archive entry {entry!r} (type {kind})", package)
        self.entry = entry
        self.kind = kind


class UnsafeEntryError(ArchiveError):
    """Archive entry would be written outside the package directory"""

    def __init__(self, entry: str, package: Optional[str] = None):
        super().__init__(f"Archive entry escapes package directory: {entry!r}", package)
        self.entry = entry


# Dependency graph

class GraphError(FpmError):
    """Dependency graph rejected a mutation"""

    def __init__(self, message: str, source: str, target: str):
        super().__init__(message, source)
        self.source = source
        self.target = target


class CycleError(GraphError):
    """Edge would close a dependency cycle"""

    def __init__(self, source: str, target: str):
        super().__init__(f"Edge {source} -> {target} would create a cycle", source, target)


class DuplicateEdgeError(GraphError):
    """Edge is already recorded"""

    def __init__(self, source: str, target: str):
        super().__init__(f"Edge {source} -> {target} already exists", source, target)


class VertexNotFoundError(GraphError):
    """Edge refers to a package that is not a vertex"""

    def __init__(self, source: str, target: str, missing: str):
        super().__init__(
            f"Cannot add edge {source} -> {target}: unknown vertex {missing}",
            source, target
        )
        self.missing = missing


# Manifests

class ManifestError(FpmError):
    """Manifest file is malformed"""
    pass


class ManifestNotFoundError(ManifestError):
    """Project manifest does not exist"""

    def __init__(self, path):
        super().__init__(f"{path} not found")
        self.path = path


class MissingDependencyManifestError(ManifestError):
    """Installed package has no manifest to read dependencies from"""

    def __init__(self, package: str, path):
        super().__init__(f"package.json not found for {package} under {path}", package)
        self.path = path


class InstallCancelledError(FpmError):
    """Install run was cancelled because a sibling task failed"""
    pass
