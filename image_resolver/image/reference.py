"""Container image reference value type.

References follow the `[registry/]path[:tag][@digest]` grammar used by
podman and docker. No Docker Hub normalization is applied: `alpine` stays
`alpine:latest` rather than becoming `docker.io/library/alpine:latest`, so
the canonical name is exactly what the user would type at `podman pull`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Optional

from ..container.interface import InvalidReferenceError

DEFAULT_TAG = "latest"

_REGISTRY_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9.-]*[A-Za-z0-9])?(?::[0-9]+)?$")
_COMPONENT_RE = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
_TAG_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")
_DIGEST_RE = re.compile(r"^[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}$")


def is_registry_host(segment: str) -> bool:
    return "." in segment or ":" in segment or segment == "localhost"


@dataclass(frozen=True, eq=False)
class ImageReference:
    """Immutable image identity.

    - registry: host[:port], empty for Docker Hub style short names
    - repository: slash separated path below the registry
    - tag: tag name, None only when pinned by digest alone
    - digest: `algorithm:hex` content digest, or None

    Equality and hashing use `canonical_name()`.
    """

    registry: str
    repository: str
    tag: Optional[str] = DEFAULT_TAG
    digest: Optional[str] = None

    def __post_init__(self) -> None:
        # an unpinned reference always names a tag
        if not self.tag and not self.digest:
            object.__setattr__(self, "tag", DEFAULT_TAG)

    @classmethod
    def parse(cls, text: str) -> "ImageReference":
        if not isinstance(text, str) or not text.strip():
            raise InvalidReferenceError(f"image reference must not be empty: {text!r}")

        name = text.strip()
        digest: Optional[str] = None
        if "@" in name:
            name, digest = name.split("@", 1)
            if not _DIGEST_RE.match(digest):
                raise InvalidReferenceError(f"invalid digest in image reference: {text}")

        segments = name.split("/")
        tag: Optional[str] = None
        last = segments[-1]
        if ":" in last:
            last, tag = last.rsplit(":", 1)
            segments[-1] = last
            if not _TAG_RE.match(tag):
                raise InvalidReferenceError(f"invalid tag in image reference: {text}")

        registry = ""
        if len(segments) > 1 and is_registry_host(segments[0]):
            registry = segments.pop(0)
            if not _REGISTRY_RE.match(registry):
                raise InvalidReferenceError(f"invalid registry in image reference: {text}")

        for component in segments:
            if not _COMPONENT_RE.match(component):
                raise InvalidReferenceError(
                    f"invalid repository component {component!r} in image reference: {text}"
                )

        if tag is None and digest is None:
            tag = DEFAULT_TAG

        return cls(registry=registry, repository="/".join(segments), tag=tag, digest=digest)

    def unversioned_part(self) -> str:
        if self.registry:
            return f"{self.registry}/{self.repository}"
        return self.repository

    def version_part(self) -> str:
        if self.digest:
            return self.digest
        return self.tag or DEFAULT_TAG

    def canonical_name(self) -> str:
        name = self.unversioned_part()
        if self.tag:
            name = f"{name}:{self.tag}"
        if self.digest:
            name = f"{name}@{self.digest}"
        return name

    def with_tag(self, tag: str) -> "ImageReference":
        if not _TAG_RE.match(tag):
            raise InvalidReferenceError(f"invalid tag: {tag}")
        return replace(self, tag=tag, digest=None)

    def with_registry(self, registry: str) -> "ImageReference":
        if registry and not _REGISTRY_RE.match(registry):
            raise InvalidReferenceError(f"invalid registry: {registry}")
        return replace(self, registry=registry)

    def with_repository(self, repository: str) -> "ImageReference":
        for component in repository.split("/"):
            if not _COMPONENT_RE.match(component):
                raise InvalidReferenceError(f"invalid repository: {repository}")
        return replace(self, repository=repository)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ImageReference):
            return NotImplemented
        return self.canonical_name() == other.canonical_name()

    def __hash__(self) -> int:
        return hash(self.canonical_name())

    def __str__(self) -> str:
        return self.canonical_name()
