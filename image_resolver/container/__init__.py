from .interface import (
    ImageData,
    ImageResolutionError,
    InvalidReferenceError,
    ManifestPlatformMismatchError,
    PullError,
    PullRetriesExhaustedError,
    PullStream,
    RegistryClient,
    RegistryClientError,
    TransientPullError,
    is_manifest_mismatch,
)

__all__ = [
    "ImageData",
    "ImageResolutionError",
    "InvalidReferenceError",
    "ManifestPlatformMismatchError",
    "PullError",
    "PullRetriesExhaustedError",
    "PullStream",
    "RegistryClient",
    "RegistryClientError",
    "TransientPullError",
    "is_manifest_mismatch",
]
