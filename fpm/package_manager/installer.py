"""
Package installer for fpm

Resolves, downloads and unpacks a package, then walks everything it declares.
The walk uses an explicit work stack, so deep trees never grow the call
stack, and an InstallContext shared by all tasks of one run, so a name is
fetched at most once no matter how many packages or threads ask for it.
"""

import logging
import shutil
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..errors import (
    FpmError, GraphError, InstallCancelledError, ManifestError,
    MissingDependencyManifestError
)
from .extractor import ArchiveExtractor
from .fetcher import ArchiveFetcher
from .graph import DependencyGraph
from .manifest import Dependency, PackageManifest, find_package_manifests, package_path
from .resolver import RegistryResolver

logger = logging.getLogger(__name__)


@dataclass
class InstallRecord:
    """A package that is installed (or was already present) in this run"""
    name: str
    version: str
    path: Path


class InstallContext:
    """
    Deduplication state of one install run

    ``done`` maps every finished name to the version it was installed at;
    ``in_progress`` holds an event per name currently being fetched, set when
    that package's own download and extraction finish. Both live only as long
    as the run. Use as a context manager: the temporary download directory is
    created on entry and removed on exit.
    """

    def __init__(self, strict: bool = False, tmp_root: Optional[Path] = None):
        self.strict = strict
        self.lock = threading.Lock()
        self.done: Dict[str, str] = {}
        self.in_progress: Dict[str, threading.Event] = {}
        self.records: Dict[str, InstallRecord] = {}
        self.failed: Dict[str, BaseException] = {}
        self.cancelled = threading.Event()
        self.tmp_root = tmp_root
        self.download_dir: Optional[Path] = None

    def __enter__(self) -> 'InstallContext':
        if self.tmp_root is not None:
            Path(self.tmp_root).mkdir(parents=True, exist_ok=True)
        self.download_dir = Path(tempfile.mkdtemp(prefix=".fpm-download-", dir=self.tmp_root))
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self.download_dir is not None:
            shutil.rmtree(self.download_dir, ignore_errors=True)
            self.download_dir = None
        return False

    def version_of(self, name: str) -> Optional[str]:
        with self.lock:
            return self.done.get(name)

    def claim(self, name: str) -> Tuple[str, Optional[threading.Event]]:
        """
        Try to become the installer of ``name``

        Returns ``("done", None)`` if it already finished, ``("failed", None)``
        if an earlier attempt in this run failed, ``("wait", event)`` if
        another task owns it and ``("owner", event)`` if the caller does.
        """
        with self.lock:
            if name in self.done:
                return "done", None
            if name in self.failed:
                return "failed", None
            if name in self.in_progress:
                return "wait", self.in_progress[name]
            event = threading.Event()
            self.in_progress[name] = event
            return "owner", event

    def finish(self, record: InstallRecord) -> None:
        """Mark a package done and wake anyone waiting for it"""
        with self.lock:
            self.done.setdefault(record.name, record.version)
            self.records.setdefault(record.name, record)
            event = self.in_progress.pop(record.name, None)
        if event is not None:
            event.set()

    def release(self, name: str, error: BaseException) -> None:
        """Give up ownership after a failure"""
        with self.lock:
            self.failed.setdefault(name, error)
            event = self.in_progress.pop(name, None)
        if event is not None:
            event.set()

    def cancel(self) -> None:
        self.cancelled.set()


class PackageInstaller:
    """Installs packages and their dependency trees into an install root"""

    def __init__(self, resolver: RegistryResolver, fetcher: ArchiveFetcher,
                 extractor: ArchiveExtractor, install_dir: Path):
        self.resolver = resolver
        self.fetcher = fetcher
        self.extractor = extractor
        self.install_dir = Path(install_dir)

    def install_package(self, name: str, version_range: str,
                        graph: DependencyGraph, context: InstallContext) -> str:
        """
        Install ``name`` and everything it depends on

        Returns the version ``name`` ended up at. Failures of ``name`` itself
        propagate; failures further down the tree are logged and skipped,
        unless the context is strict.
        """
        stack: List[Tuple[Dependency, Optional[str]]] = [(Dependency(name, version_range), None)]
        root_version = version_range

        while stack:
            if context.cancelled.is_set():
                raise InstallCancelledError(f"Installation of {name} cancelled", name)

            request, parent = stack.pop()
            try:
                version, children = self._install_one(request, graph, context)
            except (FpmError, OSError) as e:
                if parent is None or context.strict:
                    raise
                logger.warning("Error installing dependency %s (required by %s): %s",
                               request, parent, e)
                continue

            if parent is None:
                root_version = version

            # Reversed so dependencies are visited in declaration order
            for child in reversed(children):
                stack.append((child, request.name))

        return root_version

    def _install_one(self, request: Dependency, graph: DependencyGraph,
                     context: InstallContext) -> Tuple[str, List[Dependency]]:
        """Install a single package; returns its version and what it declares"""
        name = request.name

        state, event = context.claim(name)
        if state == "done":
            logger.debug("%s already installed in this run", name)
            graph.add_vertex(name)
            return context.version_of(name), []

        if state == "wait":
            logger.debug("%s is being installed by another task, waiting", name)
            event.wait()
            version = context.version_of(name)
            if version is None:
                # The owner failed and reports that itself
                logger.debug("%s failed in another task, taking %s as requested",
                             name, request.version_spec)
                return request.version_spec, []
            graph.add_vertex(name)
            return version, []

        if state == "failed":
            raise FpmError(
                f"Not retrying {name}: it failed earlier in this run ({context.failed.get(name)})",
                name
            )

        try:
            pkg_dir = package_path(self.install_dir, name)
            if self.is_fully_installed(name):
                version = self._installed_version(pkg_dir) or request.version_spec
                logger.debug("%s@%s already present in %s", name, version, pkg_dir)
                graph.add_vertex(name)
                context.finish(InstallRecord(name, version, pkg_dir))
                return version, []

            try:
                manifest = self.resolver.resolve(name, request.version_spec)
                archive = self.fetcher.fetch(manifest.tarball_url, manifest.shasum,
                                             context.download_dir)
                pkg_dir = self.extractor.extract(archive, self.install_dir, name)
            except FpmError as e:
                if e.package is None:
                    e.package = name
                raise

            graph.add_vertex(name)
            children = self._declared_dependencies(name, pkg_dir, graph)
        except BaseException as e:
            context.release(name, e)
            raise

        context.finish(InstallRecord(name, manifest.version, pkg_dir))
        return manifest.version, children

    def _declared_dependencies(self, name: str, pkg_dir: Path,
                               graph: DependencyGraph) -> List[Dependency]:
        """Read what an installed package depends on and record the edges"""
        children = []
        for dep in self.read_dependencies(name, pkg_dir):
            graph.add_vertex(dep.name)
            try:
                graph.add_edge(name, dep.name)
            except GraphError as e:
                logger.debug("Not recording edge: %s", e)
            children.append(dep)
        return children

    def read_dependencies(self, name: str, pkg_dir: Path) -> List[Dependency]:
        """
        Dependencies declared by an installed package

        Covers the primary manifest and any nested workspace manifests. A
        package without a manifest declares nothing.
        """
        try:
            paths = find_package_manifests(pkg_dir, name)
        except MissingDependencyManifestError as e:
            logger.warning("%s, skipping dependency installation", e)
            return []

        deps: Dict[str, Dependency] = {}
        for path in paths:
            try:
                manifest = PackageManifest.load(path)
            except (ManifestError, OSError) as e:
                logger.warning("Error reading %s: %s", path, e)
                continue

            for dep_name, dep_range in manifest.dependencies.items():
                deps.setdefault(dep_name, Dependency(dep_name, dep_range))

        return list(deps.values())

    def is_fully_installed(self, name: str) -> bool:
        """
        Check that ``name`` and its whole declared subtree are on disk

        A package directory that exists but is missing any (transitive)
        dependency does not count, so partial trees get completed.
        """
        stack = [name]
        seen = set()
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)

            pkg_dir = package_path(self.install_dir, current)
            if not pkg_dir.is_dir() or not any(pkg_dir.iterdir()):
                return False

            if (pkg_dir / "package.json").is_file():
                stack.extend(dep.name for dep in self.read_dependencies(current, pkg_dir))

        return True

    def _installed_version(self, pkg_dir: Path) -> Optional[str]:
        try:
            return PackageManifest.load(pkg_dir / "package.json").version
        except (ManifestError, OSError):
            return None
