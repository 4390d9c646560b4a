from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Optional, Protocol

if TYPE_CHECKING:  # pragma: no cover
    from ..image.reference import ImageReference


@dataclass(frozen=True)
class ImageData:
    """Metadata recorded for an image known to be present locally.

    - created_at: image creation time, None when the runtime did not report it
    """

    created_at: Optional[datetime] = None


class PullStream(Protocol):
    """Progress of a single pull request issued to the runtime."""

    def await_completion(self) -> None:  # pragma: no cover - protocol
        """Block until the pull finishes.

        Raises:
            TransientPullError: the attempt may succeed if retried
            RegistryClientError: the runtime rejected the pull
        """
        ...


class RegistryClient(Protocol):
    """Runtime/registry boundary used by the image puller.

    Implementations own the wire protocol. Nothing above this boundary knows
    whether images come from podman, docker, or a test double.
    """

    def pull(
        self,
        repository: str,
        tag: str,
        platform: Optional[str] = None,
    ) -> PullStream:  # pragma: no cover - protocol
        """Start pulling `repository:tag`. A None platform means runtime default."""
        ...

    def inspect_image(self, image: "ImageReference") -> Optional[ImageData]:  # pragma: no cover - protocol
        """Return metadata when the image exists locally, None otherwise."""
        ...


class ImageResolutionError(RuntimeError):
    """Base class for every failure raised while resolving an image."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


class InvalidReferenceError(ImageResolutionError, ValueError):
    """Raised when an image reference string cannot be parsed."""


class TransientPullError(ImageResolutionError):
    """A pull attempt failed in a way that is worth retrying (timeouts, resets)."""


class RegistryClientError(ImageResolutionError):
    """The runtime refused or failed a pull request."""


class ManifestPlatformMismatchError(RegistryClientError):
    """The registry has no manifest for the requested platform."""


class PullError(ImageResolutionError):
    """Fatal failure to make an image available locally."""

    def __init__(
        self,
        image: object,
        message: Optional[str] = None,
        *,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.image = str(image)
        if message is None:
            message = f"Failed to pull image: {self.image}"
        super().__init__(
            f"{message}. Please check output of `podman pull {self.image}`",
            cause=cause,
        )


class PullRetriesExhaustedError(PullError):
    """The pull retry time limit passed without a successful attempt."""


NO_MATCHING_MANIFEST_ERROR = "no matching manifest"

# docker reports the first, podman/containers-image the second
_MANIFEST_MISMATCH_MARKERS = (
    NO_MATCHING_MANIFEST_ERROR,
    "no image found in manifest list",
)


def is_manifest_mismatch(error: object) -> bool:
    """True when a client failure says the registry lacks the requested platform."""
    if isinstance(error, ManifestPlatformMismatchError):
        return True
    lowered = str(error).lower()
    return any(marker in lowered for marker in _MANIFEST_MISMATCH_MARKERS)
