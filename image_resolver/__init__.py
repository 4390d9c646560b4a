"""Resolve container image references to locally available images.

Example:

    from image_resolver import RemoteImage

    image = RemoteImage("quay.io/fedora/fedora:40")
    name = image.get()  # pulls through podman on first use
"""

from .config import ResolverSettings, load_settings
from .container.interface import (
    ImageData,
    ImageResolutionError,
    InvalidReferenceError,
    ManifestPlatformMismatchError,
    PullError,
    PullRetriesExhaustedError,
    RegistryClientError,
    TransientPullError,
)
from .image import ImagePuller, ImageReference, LocalImagesCache, RemoteImage
from .lazy import LazyFuture
from .policy import (
    AgeBasedPullPolicy,
    AlwaysPullPolicy,
    DefaultPullPolicy,
    NeverPullPolicy,
)

__all__ = [
    "AgeBasedPullPolicy",
    "AlwaysPullPolicy",
    "DefaultPullPolicy",
    "ImageData",
    "ImagePuller",
    "ImageReference",
    "ImageResolutionError",
    "InvalidReferenceError",
    "LazyFuture",
    "LocalImagesCache",
    "ManifestPlatformMismatchError",
    "NeverPullPolicy",
    "PullError",
    "PullRetriesExhaustedError",
    "RegistryClientError",
    "RemoteImage",
    "ResolverSettings",
    "TransientPullError",
    "load_settings",
]
