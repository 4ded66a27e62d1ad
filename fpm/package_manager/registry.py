"""
Package registry client for fpm

Talks to an npm-compatible registry: one JSON metadata document per package,
listing every published version with its tarball URL and checksum.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Any, Optional
from urllib.parse import quote

import requests

from ..errors import UpstreamError, PackageNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY = "https://registry.npmjs.org"


@dataclass
class VersionManifest:
    """The part of a published version needed to fetch and verify it"""
    name: str
    version: str
    tarball_url: str
    shasum: str
    dependencies: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, version: str, data: Dict[str, Any]) -> 'VersionManifest':
        """Create from a registry ``versions`` entry"""
        dist = data.get("dist") if isinstance(data, dict) else None
        if not isinstance(dist, dict):
            raise UpstreamError(f"Registry entry for {name}@{version} has no dist section", name)

        tarball = dist.get("tarball")
        shasum = dist.get("shasum")
        if not isinstance(tarball, str) or not isinstance(shasum, str):
            raise UpstreamError(
                f"Registry entry for {name}@{version} is missing tarball or shasum", name
            )

        deps = data.get("dependencies") or {}
        if not isinstance(deps, dict):
            deps = {}
        return cls(
            name=data.get("name", name),
            version=data.get("version", version),
            tarball_url=tarball,
            shasum=shasum.lower(),
            dependencies={k: v for k, v in deps.items() if isinstance(v, str)}
        )


@dataclass
class RegistryMetadata:
    """Registry document for one package"""
    name: str
    dist_tags: Dict[str, str] = field(default_factory=dict)
    versions: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> 'RegistryMetadata':
        """Create from the registry JSON document"""
        tags = data.get("dist-tags") or {}
        versions = data.get("versions") or {}
        if not isinstance(tags, dict) or not isinstance(versions, dict):
            raise UpstreamError(f"Malformed registry document for {name}", name)

        return cls(
            name=data.get("name", name),
            dist_tags={k: v for k, v in tags.items() if isinstance(v, str)},
            versions=versions
        )

    def manifest_for(self, version: str) -> VersionManifest:
        """Get the manifest of one published version"""
        if version not in self.versions:
            raise UpstreamError(f"Registry lists no version {version} of {self.name}", self.name)
        return VersionManifest.from_dict(self.name, version, self.versions[version])


class RemoteRegistry:
    """Remote HTTP registry"""

    def __init__(self, url: str = DEFAULT_REGISTRY,
                 session: Optional[requests.Session] = None,
                 timeout: Optional[float] = None):
        self.url = url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout

    def package_url(self, name: str) -> str:
        """URL of a package's metadata document (``@scope/name`` -> ``@scope%2Fname``)"""
        return f"{self.url}/{quote(name, safe='@')}"

    def get_metadata(self, name: str) -> RegistryMetadata:
        """Fetch the metadata document of a package"""
        url = self.package_url(name)
        logger.debug("GET %s", url)

        try:
            response = self.session.get(
                url,
                headers={"Accept": "application/json"},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise UpstreamError(f"Failed to fetch package info for {name}: {e}", name) from e

        if response.status_code == 404:
            raise PackageNotFoundError(name)

        if not response.ok:
            raise UpstreamError(
                f"Failed to fetch package info for {name}: HTTP {response.status_code}",
                name,
                response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(f"Registry returned invalid JSON for {name}", name) from e

        if not isinstance(data, dict):
            raise UpstreamError(f"Malformed registry document for {name}", name)

        return RegistryMetadata.from_dict(name, data)
