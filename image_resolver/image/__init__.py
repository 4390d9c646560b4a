"""Image references, the local images cache and remote image resolution."""

from .cache import LocalImagesCache, get_local_images_cache, reset_local_images_cache
from .reference import ImageReference
from .remote import ImagePuller, RemoteImage
from .substitution import (
    ChainedSubstitutor,
    MappingSubstitutor,
    NameSubstitutor,
    NoopSubstitutor,
    PrefixingSubstitutor,
    substitutor_from_settings,
)

__all__ = [
    "ChainedSubstitutor",
    "ImagePuller",
    "ImageReference",
    "LocalImagesCache",
    "MappingSubstitutor",
    "NameSubstitutor",
    "NoopSubstitutor",
    "PrefixingSubstitutor",
    "RemoteImage",
    "get_local_images_cache",
    "reset_local_images_cache",
    "substitutor_from_settings",
]
