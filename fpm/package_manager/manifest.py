"""
Package manifest handling for fpm

Two kinds of package.json are read: the project's own manifest, which ``add``
rewrites, and the manifests shipped inside installed packages, which only
declare further dependencies.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Any, Optional

from ..errors import ManifestError, ManifestNotFoundError, MissingDependencyManifestError

logger = logging.getLogger(__name__)

MANIFEST_NAME = "package.json"
DEPENDENCIES = "dependencies"
DEV_DEPENDENCIES = "devDependencies"


@dataclass(frozen=True)
class Dependency:
    """A request for a package at a version range"""
    name: str
    version_spec: str = "latest"

    def __str__(self) -> str:
        return f"{self.name}@{self.version_spec}"


def parse_package_arg(arg: str) -> Dependency:
    """
    Parse ``name[@range]`` as given on the command line

    Scoped names keep their leading ``@``: ``@babel/core@^7`` is the package
    ``@babel/core`` at ``^7``. A missing range means ``latest``.
    """
    arg = arg.strip()
    if not arg:
        raise ValueError("Package name must not be empty")

    prefix = ""
    if arg.startswith("@"):
        prefix, arg = "@", arg[1:]

    name, sep, version = arg.partition("@")
    if not name:
        raise ValueError(f"Invalid package argument: {prefix}{arg}")

    return Dependency(prefix + name, version if sep and version else "latest")


def package_path(install_root: Path, name: str) -> Path:
    """Directory of a package in the install tree (``@scope/name`` nests)"""
    return Path(install_root).joinpath(*name.split("/"))


def _read_json(path: Path) -> Dict[str, Any]:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ManifestError(f"Failed to parse {path}: {e}") from e

    if not isinstance(data, dict):
        raise ManifestError(f"{path} does not contain a JSON object")
    return data


def _dependency_section(data: Dict[str, Any], key: str, path: Path) -> Dict[str, str]:
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise ManifestError(f"{key} in {path} must be an object")

    for name, version in section.items():
        if not isinstance(version, str):
            raise ManifestError(
                f"Version for dependency {name} in {path} is not a string: {version!r}"
            )
    return dict(section)


class ProjectManifest:
    """The project's package.json, with key order preserved"""

    def __init__(self, path: Path, data: Dict[str, Any]):
        self.path = Path(path)
        self.data = data

    @classmethod
    def load(cls, path: Path) -> 'ProjectManifest':
        """Load the manifest file"""
        path = Path(path)
        manifest_path = path / MANIFEST_NAME if path.is_dir() else path

        if not manifest_path.exists():
            raise ManifestNotFoundError(manifest_path)

        return cls(manifest_path, _read_json(manifest_path))

    @property
    def dependencies(self) -> Dict[str, str]:
        return _dependency_section(self.data, DEPENDENCIES, self.path)

    @property
    def dev_dependencies(self) -> Dict[str, str]:
        return _dependency_section(self.data, DEV_DEPENDENCIES, self.path)

    def get_all_dependencies(self, include_dev: bool = True) -> List[Dependency]:
        """Direct dependencies, regular ones first"""
        deps = [Dependency(name, spec) for name, spec in self.dependencies.items()]
        if include_dev:
            deps.extend(Dependency(name, spec) for name, spec in self.dev_dependencies.items())
        return deps

    def set_dependency(self, name: str, version_spec: str, dev: bool = False) -> None:
        """Add or update a dependency; the section is kept sorted by name"""
        key = DEV_DEPENDENCIES if dev else DEPENDENCIES
        section = _dependency_section(self.data, key, self.path)
        section[name] = version_spec
        self.data[key] = {k: section[k] for k in sorted(section)}

    def save(self) -> None:
        """Write the manifest back to disk"""
        text = json.dumps(self.data, indent=2, ensure_ascii=False)
        with open(self.path, 'w', encoding='utf-8') as f:
            f.write(text + "\n")


@dataclass
class PackageManifest:
    """The package.json found inside an installed package"""
    path: Path
    name: Optional[str] = None
    version: Optional[str] = None
    dependencies: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def load(cls, path: Path) -> 'PackageManifest':
        data = _read_json(path)
        deps = data.get(DEPENDENCIES) or {}
        if not isinstance(deps, dict):
            deps = {}

        return cls(
            path=Path(path),
            name=data.get("name") if isinstance(data.get("name"), str) else None,
            version=data.get("version") if isinstance(data.get("version"), str) else None,
            dependencies={k: v for k, v in deps.items() if isinstance(v, str)}
        )


def find_package_manifests(package_dir: Path, package_name: Optional[str] = None) -> List[Path]:
    """
    Locate the manifests of an installed package

    The primary package.json comes first, followed by the manifests of any
    workspace-style sub-packages nested inside it. Nested install trees are
    not searched.
    """
    package_dir = Path(package_dir)
    primary = package_dir / MANIFEST_NAME
    if not primary.is_file():
        raise MissingDependencyManifestError(package_name or package_dir.name, package_dir)

    nested = []
    for dirpath, dirnames, filenames in os.walk(package_dir):
        dirnames[:] = sorted(d for d in dirnames if d != "node_modules")
        if MANIFEST_NAME in filenames and Path(dirpath) != package_dir:
            nested.append(Path(dirpath) / MANIFEST_NAME)

    return [primary] + nested
