"""Resolve an image reference to a locally available image, pulling if needed."""

from __future__ import annotations

import logging
from concurrent.futures import Future
from time import monotonic
from typing import Any, Callable, Optional, Set, Union

from .. import config as resolver_config
from ..container.interface import (
    ImageResolutionError,
    PullError,
    PullRetriesExhaustedError,
    RegistryClient,
    RegistryClientError,
    TransientPullError,
    is_manifest_mismatch,
)
from ..lazy import LazyFuture
from ..loggers import image_logger
from ..policy.pull_policy import ImagePullPolicy, pull_policy_from_config
from .cache import LocalImagesCache, get_local_images_cache
from .reference import ImageReference
from .substitution import NameSubstitutor, substitutor_from_settings

logger = logging.getLogger(__name__)


class ImagePuller:
    """Makes an image available locally.

    Resolution order:
    1. Apply the name substitutor; everything after works on its result
    2. Ask the pull policy; return at once when no pull is needed
    3. Pull, retrying transient failures until the retry time limit passes
    4. When the registry has no manifest for the requested platform and a
       different retry platform is configured, pull once more with it

    Example:
        puller = ImagePuller(client, settings=ResolverSettings(platform_retry="linux/amd64"))
        name = puller.resolve(ImageReference.parse("alpine:3.19"))
    """

    def __init__(
        self,
        client: RegistryClient,
        *,
        pull_policy: Optional[ImagePullPolicy] = None,
        substitutor: Optional[NameSubstitutor] = None,
        cache: Optional[LocalImagesCache] = None,
        settings: Optional[resolver_config.ResolverSettings] = None,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self._client = client
        self._settings = settings if settings is not None else resolver_config.load_settings()
        self._cache = cache if cache is not None else get_local_images_cache(client)
        self._pull_policy = pull_policy or pull_policy_from_config(
            self._settings.image_pull_policy,
            self._cache,
            self._settings.image_pull_max_age,
        )
        self._substitutor = substitutor or substitutor_from_settings(self._settings)
        self._clock = clock

    def resolve(self, image: ImageReference) -> str:
        """Return the canonical name of a local image for `image`.

        Raises:
            PullRetriesExhaustedError: only transient failures until the time limit
            PullError: any other failure to make the image available
        """
        image = self._substitutor.apply(image)
        log = image_logger(image)

        try:
            if not self._pull_policy.should_pull(image):
                return image.canonical_name()
        except PullError:
            raise
        except ImageResolutionError as exc:
            raise PullError(image, f"Failed to check whether image {image} is present", cause=exc)

        log.info(
            "Pulling image: %s. Please be patient; this may take some time but only needs to be done once.",
            image,
        )

        platform = self._settings.platform_override
        attempted: Set[Optional[str]] = set()
        while True:
            attempted.add(platform)
            try:
                return self._pull(image, platform, log)
            except RegistryClientError as exc:
                retry_platform = self._settings.platform_retry
                if (
                    is_manifest_mismatch(exc)
                    and retry_platform is not None
                    and retry_platform != platform
                    and retry_platform not in attempted
                ):
                    log.info(
                        "Failed to find suitable image. Retrying pull of image: %s with retry platform: %s",
                        image,
                        retry_platform,
                    )
                    platform = retry_platform
                    continue
                log.error("Failed to pull image: %s: %s", image, exc)
                raise PullError(image, f"Failed to pull image {image}: {exc}", cause=exc)

    def _pull(self, image: ImageReference, platform: Optional[str], log: logging.Logger) -> str:
        """Pull for one platform, retrying transient failures until the deadline."""
        last_failure: Optional[TransientPullError] = None
        deadline = self._clock() + self._settings.pull_retry_time_limit

        while self._clock() < deadline:
            try:
                self._client.pull(image.unversioned_part(), image.version_part(), platform).await_completion()
            except TransientPullError as exc:
                # timeouts and dropped connections often clear up on their own
                last_failure = exc
                log.warning(
                    "Retrying pull for image: %s (%ss remaining)",
                    image,
                    max(0, int(deadline - self._clock())),
                )
                continue

            self._cache.refresh(image)
            return image.canonical_name()

        log.error(
            "Failed to pull image: %s. Please check output of `podman pull %s`",
            image,
            image,
            exc_info=last_failure,
        )
        raise PullRetriesExhaustedError(image, cause=last_failure)


ImageSource = Union[str, ImageReference, "Future[Any]", LazyFuture[Any]]


def _completed(value: Any) -> "Future[Any]":
    future: Future[Any] = Future()
    future.set_result(value)
    return future


def _as_reference(value: Any) -> ImageReference:
    if isinstance(value, ImageReference):
        return value
    if isinstance(value, str):
        return ImageReference.parse(value)
    raise TypeError(f"image name source produced {type(value).__name__}, expected str or ImageReference")


class RemoteImage(LazyFuture[str]):
    """Canonical name of an image that is pulled the first time it is needed.

    `image` may be a name, an ImageReference, or a future yielding either
    (for example the tag of an image still being built). The pull happens on
    the first `get()`; concurrent and later callers share its outcome.

    Example:
        image = RemoteImage("registry.fedoraproject.org/fedora:40")
        name = image.get()
    """

    def __init__(
        self,
        image: ImageSource,
        *,
        pull_policy: Optional[ImagePullPolicy] = None,
        client: Optional[RegistryClient] = None,
        substitutor: Optional[NameSubstitutor] = None,
        cache: Optional[LocalImagesCache] = None,
        settings: Optional[resolver_config.ResolverSettings] = None,
    ) -> None:
        super().__init__()
        if isinstance(image, (str, ImageReference)):
            self._image_name_future = _completed(_as_reference(image))
        elif hasattr(image, "result") and hasattr(image, "done"):
            self._image_name_future = image
        else:
            raise TypeError(f"unsupported image source: {image!r}")
        self._pull_policy = pull_policy
        self._client = client
        self._substitutor = substitutor
        self._cache = cache
        self._settings = settings

    def with_pull_policy(self, pull_policy: ImagePullPolicy) -> "RemoteImage":
        """Unresolved copy of this image using a different pull policy."""
        return RemoteImage(
            self._image_name_future,
            pull_policy=pull_policy,
            client=self._client,
            substitutor=self._substitutor,
            cache=self._cache,
            settings=self._settings,
        )

    def _resolve(self) -> str:
        image = _as_reference(self._image_name_future.result())
        return self._puller().resolve(image)

    def _puller(self) -> ImagePuller:
        settings = self._settings if self._settings is not None else resolver_config.load_settings()
        client = self._client
        if client is None:
            from ..container.podman_client import lazy_client

            client = lazy_client()
        return ImagePuller(
            client,
            pull_policy=self._pull_policy,
            substitutor=self._substitutor,
            cache=self._cache,
            settings=settings,
        )

    def _image_name_for_repr(self) -> str:
        if not self._image_name_future.done():
            return "<resolving>"
        try:
            image = _as_reference(self._image_name_future.result())
            substitutor = self._substitutor
            if substitutor is None:
                settings = self._settings if self._settings is not None else resolver_config.load_settings()
                substitutor = substitutor_from_settings(settings)
            return substitutor.apply(image).canonical_name()
        except Exception as exc:
            return str(exc)

    def __repr__(self) -> str:
        return f"RemoteImage(imageName={self._image_name_for_repr()}, pullPolicy={self._pull_policy!r})"
