"""
Image References

Parses container image references into registry, repository and tag/digest.
"""

import re
from typing import NamedTuple

from ..core.constants import ErrorMessages, RegistryConstants
from ..core.exceptions import RegistryError

REPOSITORY_PATTERN = re.compile(r'^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*(?:/[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*)*$')
TAG_PATTERN = re.compile(r'^[\w][\w.-]{0,127}$')
DIGEST_PATTERN = re.compile(r'^[a-z0-9]+(?:[.+_-][a-z0-9]+)*:[a-fA-F0-9]{32,}$')


class ImageReference(NamedTuple):
    """A parsed container image reference"""
    registry: str
    repository: str
    tag: str = ""
    digest: str = ""

    @classmethod
    def parse(cls, image: str) -> 'ImageReference':
        """
        Parse an image reference string

        Args:
            image: Reference such as "quay.io/org/bundle:v1.0.0",
                "ubuntu" or "localhost:5000/op@sha256:..."

        Returns:
            ImageReference

        Raises:
            RegistryError: If the reference is malformed
        """
        def invalid(reason: str) -> RegistryError:
            return RegistryError(
                str(ErrorMessages.RegistryError.INVALID_REFERENCE).format(image=image, error=reason)
            )

        remainder = image.strip() if image else ""
        if not remainder:
            raise invalid("reference is empty")

        digest = ""
        if '@' in remainder:
            remainder, digest = remainder.split('@', 1)
            if not DIGEST_PATTERN.match(digest):
                raise invalid(f"invalid digest {digest!r}")

        tag = ""
        last_slash = remainder.rfind('/')
        last_colon = remainder.rfind(':')
        if last_colon > last_slash:
            remainder, tag = remainder[:last_colon], remainder[last_colon + 1:]
            if not TAG_PATTERN.match(tag):
                raise invalid(f"invalid tag {tag!r}")

        registry = RegistryConstants.DEFAULT_REGISTRY
        repository = remainder
        if '/' in remainder:
            first_part, rest = remainder.split('/', 1)
            if '.' in first_part or ':' in first_part or first_part == 'localhost':
                registry, repository = first_part, rest

        if registry in RegistryConstants.DOCKER_HUB_ALIASES:
            registry = RegistryConstants.DEFAULT_REGISTRY
            if '/' not in repository:
                repository = RegistryConstants.OFFICIAL_REPO_PREFIX + repository

        if not REPOSITORY_PATTERN.match(repository):
            raise invalid(f"invalid repository {repository!r}")

        if not tag and not digest:
            tag = RegistryConstants.DEFAULT_TAG

        return cls(registry=registry, repository=repository, tag=tag, digest=digest)

    @property
    def api_host(self) -> str:
        """Host serving the registry v2 API"""
        if self.registry == RegistryConstants.DEFAULT_REGISTRY:
            return RegistryConstants.DOCKER_HUB_API_HOST
        return self.registry

    @property
    def reference(self) -> str:
        """Digest when pinned, otherwise tag"""
        return self.digest or self.tag

    def __str__(self) -> str:
        name = f"{self.registry}/{self.repository}"
        if self.tag:
            name += f":{self.tag}"
        if self.digest:
            name += f"@{self.digest}"
        return name
