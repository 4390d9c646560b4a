"""Decide whether an image has to be pulled before it is used.

Policies only read the local images cache; populating it is the cache's
own business.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol, Union

from ..image.cache import LocalImagesCache
from ..image.reference import ImageReference

logger = logging.getLogger(__name__)


class ImagePullPolicy(Protocol):
    def should_pull(self, image: ImageReference) -> bool:  # pragma: no cover - protocol
        ...


class AlwaysPullPolicy:
    """Pull on every resolution, even when a local copy exists."""

    def should_pull(self, image: ImageReference) -> bool:
        logger.debug("Pull policy 'always': pulling %s", image)
        return True

    def __repr__(self) -> str:
        return "AlwaysPullPolicy()"


class NeverPullPolicy:
    """Never touch the registry; the image must already be local."""

    def should_pull(self, image: ImageReference) -> bool:
        return False

    def __repr__(self) -> str:
        return "NeverPullPolicy()"


class DefaultPullPolicy:
    """Pull only when the image is not present locally."""

    def __init__(self, cache: LocalImagesCache) -> None:
        self.cache = cache

    def should_pull(self, image: ImageReference) -> bool:
        if self.cache.is_present(image):
            logger.debug("Using locally available image %s", image)
            return False
        return True

    def __repr__(self) -> str:
        return "DefaultPullPolicy()"


class AgeBasedPullPolicy:
    """Pull when the image is absent or its local copy is older than `max_age`.

    Images whose creation time is unknown count as fresh.
    """

    def __init__(
        self,
        max_age: Union[timedelta, float],
        cache: LocalImagesCache,
        *,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        if not isinstance(max_age, timedelta):
            max_age = timedelta(seconds=max_age)
        self.max_age = max_age
        self.cache = cache
        self._now = now

    def should_pull(self, image: ImageReference) -> bool:
        data = self.cache.get(image)
        if data is None:
            return True
        if data.created_at is None:
            return False
        age = self._now() - data.created_at
        if age > self.max_age:
            logger.debug(
                "Local image %s is %ss old (max %ss), pulling",
                image,
                int(age.total_seconds()),
                int(self.max_age.total_seconds()),
            )
            return True
        return False

    def __repr__(self) -> str:
        return f"AgeBasedPullPolicy(max_age={self.max_age})"


def pull_policy_from_config(
    name: Optional[str],
    cache: LocalImagesCache,
    max_age: Union[timedelta, float] = 86400.0,
) -> ImagePullPolicy:
    """Map a configured policy name onto a policy instance.

    Accepts 'always', 'if-not-present', 'never' and 'max-age'. Unknown names
    fall back to 'if-not-present'.
    """
    policy = (name or "if-not-present").strip().lower()
    if policy == "always":
        return AlwaysPullPolicy()
    if policy == "never":
        return NeverPullPolicy()
    if policy == "max-age":
        return AgeBasedPullPolicy(max_age, cache)
    if policy != "if-not-present":
        logger.warning("Unknown image pull policy %r, using 'if-not-present'", name)
    return DefaultPullPolicy(cache)
