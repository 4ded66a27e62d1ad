"""
Main package manager for fpm

Provides the high-level ``add`` and ``install`` operations on top of the
installer, plus configuration loading.
"""

import json
import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, Optional, Any

import requests

from ..errors import ConfigError, InstallCancelledError
from .extractor import ArchiveExtractor
from .fetcher import ArchiveFetcher
from .graph import DependencyGraph
from .installer import InstallContext, InstallRecord, PackageInstaller
from .manifest import ProjectManifest, package_path, parse_package_arg
from .ranges import parse_version
from .registry import DEFAULT_REGISTRY, RemoteRegistry
from .resolver import RegistryResolver

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "registry": DEFAULT_REGISTRY,
    "installDir": "node_modules",
    "manifest": "package.json",
    "maxWorkers": 8,
    "timeout": None,
}


def saved_range(version: str) -> str:
    """Range written to the manifest for a freshly added version"""
    try:
        parse_version(version)
    except ValueError:
        return version
    return f"^{version}"


class PackageManager:
    """High-level package manager interface"""

    def __init__(self, config_path: Optional[Path] = None,
                 cwd: Optional[Path] = None,
                 session: Optional[requests.Session] = None):
        """Initialize package manager with configuration"""
        self.cwd = Path(cwd) if cwd else Path.cwd()
        self.config = self._load_config(config_path)

        self.session = session or requests.Session()
        timeout = self.config.get("timeout")
        self.registry = RemoteRegistry(self.config["registry"], self.session, timeout)
        self.install_dir = self.cwd / self.config["installDir"]
        self.manifest_path = self.cwd / self.config["manifest"]
        self.installer = PackageInstaller(
            RegistryResolver(self.registry),
            ArchiveFetcher(self.session, timeout=timeout),
            ArchiveExtractor(),
            self.install_dir
        )

    def _load_config(self, config_path: Optional[Path] = None) -> Dict[str, Any]:
        """Load package manager configuration"""
        if not config_path:
            # Check default locations
            for path in [
                self.cwd / ".fpmrc",
                Path.home() / ".fpm" / "config.json"
            ]:
                if path.exists():
                    config_path = path
                    break

        config = dict(DEFAULT_CONFIG)
        if config_path:
            try:
                with open(config_path, 'r') as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise ConfigError(f"Failed to read config {config_path}: {e}") from e

            if not isinstance(data, dict):
                raise ConfigError(f"Config {config_path} must be a JSON object")
            config.update(data)

        if os.environ.get("FPM_REGISTRY"):
            config["registry"] = os.environ["FPM_REGISTRY"]

        return config

    def add(self, spec: str, dev: bool = False,
            graph: Optional[DependencyGraph] = None) -> InstallRecord:
        """Install one package and record it in the project manifest"""
        dep = parse_package_arg(spec)
        manifest = ProjectManifest.load(self.manifest_path)
        self.install_dir.mkdir(parents=True, exist_ok=True)
        graph = graph if graph is not None else DependencyGraph()

        with InstallContext(strict=True, tmp_root=self.install_dir) as context:
            version = self.installer.install_package(dep.name, dep.version_spec, graph, context)
            record = context.records.get(dep.name) or InstallRecord(
                dep.name, version, package_path(self.install_dir, dep.name)
            )

        logger.debug("%s depends on: %s", dep.name,
                     ", ".join(graph.dependencies_of(dep.name)) or "nothing")
        manifest.set_dependency(dep.name, saved_range(version), dev=dev)
        manifest.save()

        section = "devDependencies" if dev else "dependencies"
        print(f"✓ Installed {dep.name}@{version} (added to {section})")
        return record

    def install(self, graph: Optional[DependencyGraph] = None) -> Dict[str, InstallRecord]:
        """
        Install every dependency declared in the project manifest

        One task per direct dependency runs on a bounded thread pool. The
        first failure cancels the rest of the run and is raised once every
        task has stopped.
        """
        manifest = ProjectManifest.load(self.manifest_path)
        deps = manifest.get_all_dependencies(include_dev=True)
        self.install_dir.mkdir(parents=True, exist_ok=True)
        graph = graph if graph is not None else DependencyGraph()

        errors = []
        with InstallContext(tmp_root=self.install_dir) as context:
            with ThreadPoolExecutor(max_workers=self.config["maxWorkers"]) as executor:
                futures = {
                    executor.submit(
                        self.installer.install_package,
                        dep.name, dep.version_spec, graph, context
                    ): dep
                    for dep in deps
                }

                for future in as_completed(futures):
                    if future.cancelled():
                        continue

                    dep = futures[future]
                    try:
                        version = future.result()
                    except InstallCancelledError:
                        continue
                    except Exception as e:
                        print(f"✗ {dep}: {e}")
                        if not errors:
                            context.cancel()
                            for pending in futures:
                                pending.cancel()
                        errors.append(e)
                    else:
                        print(f"✓ {dep.name}@{version}")

            records = dict(context.records)

        if errors:
            raise errors[0]

        logger.debug("Install order: %s", ", ".join(graph.topological_order()))
        print(f"✔ All packages installed successfully ({len(records)} packages)")
        return records
