"""Process-wide cache of images known to be present locally."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Optional

from ..container.interface import ImageData, ImageResolutionError, RegistryClient
from .reference import ImageReference

logger = logging.getLogger(__name__)

PresenceCheck = Callable[[ImageReference], Optional[ImageData]]


class LocalImagesCache:
    """Memo of which images exist in local storage.

    Each distinct reference is checked against the runtime once; the answer
    is kept for the life of the process. An entry only ever moves from absent
    to present, through `refresh()` after a successful pull. Nothing is
    evicted: a stale "present" costs a failed container start, a stale
    "absent" costs one redundant pull.
    """

    def __init__(self, presence_check: PresenceCheck) -> None:
        self._presence_check = presence_check
        self._images: Dict[str, Optional[ImageData]] = {}
        self._lock = threading.RLock()

    def get(self, image: ImageReference) -> Optional[ImageData]:
        """Return metadata for a local image, checking the runtime on first use."""
        key = image.canonical_name()
        with self._lock:
            if key in self._images:
                return self._images[key]

        # Runtime call made without the lock; a concurrent refresh() may land first
        data = self._presence_check(image)
        with self._lock:
            current = self._images.get(key)
            if current is not None:
                return current
            self._images[key] = data
            logger.debug("Image %s %s locally", key, "found" if data is not None else "not found")
            return data

    def is_present(self, image: ImageReference) -> bool:
        return self.get(image) is not None

    def refresh(self, image: ImageReference) -> ImageData:
        """Record that `image` is now present locally.

        Called after a pull completed. Metadata comes from one inspect call;
        if that fails the image is still marked present with unknown age.
        """
        key = image.canonical_name()
        try:
            data = self._presence_check(image)
        except ImageResolutionError as exc:
            logger.warning("Could not inspect freshly pulled image %s: %s", key, exc)
            data = None
        if data is None:
            data = ImageData()

        with self._lock:
            self._images[key] = data
        logger.debug("Refreshed local image cache for %s", key)
        return data

    def clear(self) -> None:
        """Forget every entry (useful for testing)."""
        with self._lock:
            self._images.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._images)


_instances: Dict[RegistryClient, LocalImagesCache] = {}
_instance_lock = threading.Lock()


def get_local_images_cache(client: Optional[RegistryClient] = None) -> LocalImagesCache:
    """Process-wide cache for `client`, one instance per client.

    Without a client the cache is backed by the process-wide podman client.
    """
    with _instance_lock:
        if client is None:
            from ..container.podman_client import lazy_client

            client = lazy_client()
        cache = _instances.get(client)
        if cache is None:
            cache = _instances[client] = LocalImagesCache(client.inspect_image)
        return cache


def reset_local_images_cache() -> None:
    """Drop every process-wide cache (useful for testing)."""
    with _instance_lock:
        _instances.clear()
