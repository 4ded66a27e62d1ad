"""
Version resolver for fpm

Turns a package name and version range into one concrete published version.
"""

import logging
from typing import List, Tuple

import semver

from ..errors import InvalidRangeError, NoMatchingVersionError
from .ranges import VersionRange, parse_version
from .registry import RegistryMetadata, RemoteRegistry, VersionManifest

logger = logging.getLogger(__name__)

LATEST = "latest"


def sorted_versions(versions) -> List[Tuple[semver.Version, str]]:
    """Parse and sort published versions, newest first.

    Versions that are not valid semantic versions are left out.
    """
    parsed = []
    for text in versions:
        try:
            parsed.append((parse_version(text), text))
        except ValueError:
            logger.debug("Ignoring unparseable version %r", text)

    parsed.sort(key=lambda item: item[0], reverse=True)
    return parsed


def resolve_version(metadata: RegistryMetadata, version_range: str) -> str:
    """
    Pick the version of a package that a range asks for

    ``latest`` (or any other dist-tag present in the document) returns the
    tagged version as is. Anything else is parsed as a range and the highest
    satisfying published version wins.
    """
    if version_range in metadata.dist_tags:
        return metadata.dist_tags[version_range]

    if version_range == LATEST:
        raise NoMatchingVersionError(metadata.name, version_range)

    constraint = VersionRange.parse(version_range)

    for version, text in sorted_versions(metadata.versions):
        if constraint.satisfies(version):
            return text

    raise NoMatchingVersionError(metadata.name, version_range)


class RegistryResolver:
    """Resolves package requests against a registry"""

    def __init__(self, registry: RemoteRegistry):
        self.registry = registry

    def resolve(self, name: str, version_range: str) -> VersionManifest:
        """Resolve ``name@version_range`` to the manifest of a concrete version"""
        metadata = self.registry.get_metadata(name)

        try:
            version = resolve_version(metadata, version_range)
        except InvalidRangeError:
            raise InvalidRangeError(version_range, name) from None

        logger.debug("Resolved %s@%s to %s", name, version_range, version)
        return metadata.manifest_for(version)
