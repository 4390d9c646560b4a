"""Image name substitution applied before an image is resolved.

Substitutors let an operator send pulls to a mirror or swap in an
internally rebuilt image without touching the code that asks for it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Mapping, Protocol

from .reference import ImageReference, is_registry_host

if TYPE_CHECKING:  # pragma: no cover
    from ..config import ResolverSettings

logger = logging.getLogger(__name__)


class NameSubstitutor(Protocol):
    """Rewrites a requested reference. Must be pure."""

    def apply(self, image: ImageReference) -> ImageReference:  # pragma: no cover - protocol
        ...


class NoopSubstitutor:
    def apply(self, image: ImageReference) -> ImageReference:
        return image

    def __repr__(self) -> str:
        return "NoopSubstitutor()"


class PrefixingSubstitutor:
    """Prepends a registry (and optional path) to registry-less image names.

    With prefix "mirror.example.com/hub/", `alpine:3.19` becomes
    `mirror.example.com/hub/alpine:3.19`. A prefix whose first segment is
    not a registry host, such as "myorg/", only extends the repository path.
    Names that already carry a registry are returned unchanged.
    """

    def __init__(self, prefix: str) -> None:
        prefix = prefix.strip().strip("/")
        first, _, rest = prefix.partition("/")
        if is_registry_host(first):
            self.registry, self.path = first, rest
        else:
            self.registry, self.path = "", prefix

    def apply(self, image: ImageReference) -> ImageReference:
        if image.registry or not (self.registry or self.path):
            return image
        repository = f"{self.path}/{image.repository}" if self.path else image.repository
        substituted = image.with_repository(repository)
        if self.registry:
            substituted = substituted.with_registry(self.registry)
        logger.debug("Prefixed image name %s -> %s", image, substituted)
        return substituted

    def __repr__(self) -> str:
        prefix = "/".join(part for part in (self.registry, self.path) if part)
        return f"PrefixingSubstitutor({prefix!r})"


class MappingSubstitutor:
    """Exact rewrites keyed by canonical name, e.g. {"alpine:3.19": "mirror/alpine:3.19"}."""

    def __init__(self, mapping: Mapping[str, str]) -> None:
        self._mapping: Dict[str, ImageReference] = {
            ImageReference.parse(source).canonical_name(): ImageReference.parse(target)
            for source, target in mapping.items()
        }

    def apply(self, image: ImageReference) -> ImageReference:
        substituted = self._mapping.get(image.canonical_name())
        if substituted is None:
            return image
        logger.debug("Substituted image name %s -> %s", image, substituted)
        return substituted

    def __repr__(self) -> str:
        return f"MappingSubstitutor({len(self._mapping)} entries)"


class ChainedSubstitutor:
    """Applies substitutors in order, each to the previous one's output."""

    def __init__(self, *substitutors: NameSubstitutor) -> None:
        self.substitutors = substitutors

    def apply(self, image: ImageReference) -> ImageReference:
        for substitutor in self.substitutors:
            image = substitutor.apply(image)
        return image

    def __repr__(self) -> str:
        return f"ChainedSubstitutor{self.substitutors!r}"


def substitutor_from_settings(settings: "ResolverSettings") -> NameSubstitutor:
    """Build the configured substitutor: exact rewrites first, then the hub prefix."""
    substitutors = []
    if settings.image_substitutions:
        substitutors.append(MappingSubstitutor(settings.image_substitutions))
    if settings.hub_image_name_prefix:
        substitutors.append(PrefixingSubstitutor(settings.hub_image_name_prefix))

    if not substitutors:
        return NoopSubstitutor()
    if len(substitutors) == 1:
        return substitutors[0]
    return ChainedSubstitutor(*substitutors)
