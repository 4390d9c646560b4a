from __future__ import annotations

import logging
import re
import threading
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Iterable, Optional

import requests
from podman import PodmanClient
from podman.errors import APIError, ImageNotFound, NotFound

from .. import config as resolver_config
from ..loggers import image_logger
from .interface import (
    ImageData,
    ImageResolutionError,
    ManifestPlatformMismatchError,
    RegistryClientError,
    TransientPullError,
    is_manifest_mismatch,
)
from .progress import PullProgressLogger, decode_progress

if TYPE_CHECKING:  # pragma: no cover
    from ..image.reference import ImageReference

logger = logging.getLogger(__name__)

_TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "connection reset",
    "connection refused",
    "unexpected eof",
    "tls handshake",
    "temporary failure in name resolution",
)

_TRANSIENT_REQUEST_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.ChunkedEncodingError,
)

_CREATED_RE = re.compile(r"^(?P<base>[^.Z+]+)(?P<frac>\.\d+)?(?P<tz>Z|[+-]\d{2}:?\d{2})?$")


def classify_failure(
    message: str,
    *,
    cause: Optional[BaseException] = None,
    transient_default: bool = False,
) -> ImageResolutionError:
    """Map a runtime failure message onto the resolver error taxonomy.

    Manifest mismatches win over everything else, since they are the one
    client failure the puller can recover from by switching platform.
    """
    lowered = message.lower()
    if is_manifest_mismatch(message):
        return ManifestPlatformMismatchError(message, cause=cause)
    if transient_default or any(marker in lowered for marker in _TRANSIENT_MARKERS):
        return TransientPullError(message, cause=cause)
    return RegistryClientError(message, cause=cause)


def _classify_api_error(exc: APIError) -> ImageResolutionError:
    # 5xx and connection failures (no response at all) are retryable
    status = getattr(exc, "status_code", None)
    transient = status is None or status >= 500
    return classify_failure(str(exc), cause=exc, transient_default=transient)


def _classify_exception(exc: BaseException) -> ImageResolutionError:
    if isinstance(exc, ImageResolutionError):
        return exc
    if isinstance(exc, APIError):
        return _classify_api_error(exc)
    if isinstance(exc, _TRANSIENT_REQUEST_ERRORS):
        return TransientPullError(f"connection to podman lost during pull: {exc}", cause=exc)
    return RegistryClientError(f"unexpected failure reading pull progress: {exc}", cause=exc)


def _is_read_timeout(exc: BaseException) -> bool:
    # requests reports a streamed read timeout as ConnectionError("... Read timed out")
    if isinstance(exc, requests.exceptions.Timeout):
        return True
    return (
        isinstance(exc, requests.exceptions.ConnectionError)
        and "read timed out" in str(exc).lower()
    )


def _parse_created(value: Any) -> Optional[datetime]:
    """Parse the `Created` image attribute.

    The list endpoint reports epoch seconds; inspect reports RFC 3339 with up
    to nanosecond precision, which `datetime.fromisoformat` cannot take as-is.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    match = _CREATED_RE.match(str(value).strip())
    if not match:
        logger.debug("Unrecognized image creation time: %s", value)
        return None
    text = match.group("base")
    frac = match.group("frac")
    if frac:
        text += frac[:7]
    tz = match.group("tz")
    if tz:
        text += "+00:00" if tz == "Z" else tz
    try:
        created = datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Unrecognized image creation time: %s", value)
        return None
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return created


class PodmanPullStream:
    """Progress of one podman pull.

    `await_completion()` drains the progress iterator in the calling thread.
    A stall is detected by the podman client's read timeout, which fails the
    iterator with a requests timeout; that surfaces as `TransientPullError`.
    The iterator is closed however the wait ends.
    """

    def __init__(
        self,
        progress: Iterable[Any],
        image: str,
        *,
        pause_timeout: Optional[float] = None,
        progress_logger: Optional[PullProgressLogger] = None,
    ) -> None:
        self._progress = progress
        self.image = image
        self._pause_timeout = pause_timeout or None
        self._progress_logger = progress_logger or PullProgressLogger(image_logger(image), image)

    def await_completion(self) -> None:
        try:
            for chunk in self._progress:
                entry = decode_progress(chunk)
                if entry is None:
                    continue
                error = entry.get("error") or (entry.get("errorDetail") or {}).get("message")
                if error:
                    raise classify_failure(str(error))
                self._progress_logger.on_progress(entry)
        except Exception as exc:
            if _is_read_timeout(exc):
                raise TransientPullError(
                    f"pull of {self.image} made no progress for {self._pause_timeout or 0:g}s",
                    cause=exc,
                )
            raise _classify_exception(exc)
        finally:
            self._close()

        self._progress_logger.on_complete()

    def _close(self) -> None:
        close = getattr(self._progress, "close", None)
        if callable(close):
            try:
                close()
            except Exception as exc:
                logger.debug("Error closing pull progress for %s: %s", self.image, exc)


class PodmanRegistryClient:
    """RegistryClient backed by the podman REST API (podman-py).

    Boundary rules:
    - Only this module talks to Podman Python APIs.
    - Every podman failure leaves this class as an ImageResolutionError.
    """

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        pause_timeout: Optional[float] = None,
        client: Optional[PodmanClient] = None,
    ) -> None:
        self._base_url = base_url
        self._pause_timeout = pause_timeout
        # Lazy-init Podman client on first use
        self._client = client
        self._client_lock = threading.Lock()

    def pull(self, repository: str, tag: str, platform: Optional[str] = None) -> PodmanPullStream:
        self._ensure_client()
        if ":" in tag:
            # digest: podman-py would join it with ":"
            reference, pull_tag = f"{repository}@{tag}", None
            image = reference
        else:
            reference, pull_tag = repository, tag
            image = f"{repository}:{tag}"

        kwargs = {"stream": True}
        if platform:
            kwargs["platform"] = platform
        logger.debug("Requesting pull of %s (platform=%s)", image, platform or "default")
        try:
            progress = self._client.images.pull(reference, tag=pull_tag, **kwargs)
        except APIError as exc:
            raise _classify_api_error(exc)
        except _TRANSIENT_REQUEST_ERRORS as exc:
            raise TransientPullError(f"failed to reach podman to pull {image}", cause=exc)

        return PodmanPullStream(progress, image, pause_timeout=self._effective_pause_timeout())

    def inspect_image(self, image: "ImageReference") -> Optional[ImageData]:
        self._ensure_client()
        name = str(image)
        try:
            found = self._client.images.get(name)
        except (ImageNotFound, NotFound):
            return None
        except APIError as exc:
            raise RegistryClientError(f"failed to inspect image {name}", cause=exc)
        except _TRANSIENT_REQUEST_ERRORS as exc:
            raise TransientPullError(f"failed to reach podman to inspect {name}", cause=exc)

        attrs = getattr(found, "attrs", None) or {}
        return ImageData(created_at=_parse_created(attrs.get("Created")))

    def _ensure_client(self) -> None:
        with self._client_lock:
            if self._client is None:
                base_url = self._base_url or resolver_config.podman_socket()
                timeout = self._effective_pause_timeout() or None
                logger.debug("Connecting to podman at %s (read timeout %ss)", base_url, timeout)
                # the read timeout doubles as the stalled pull watchdog
                self._client = PodmanClient(base_url=base_url, timeout=timeout)

    def _effective_pause_timeout(self) -> float:
        if self._pause_timeout is not None:
            return self._pause_timeout
        return resolver_config.pull_pause_timeout()


_default_client: Optional[PodmanRegistryClient] = None
_default_client_lock = threading.Lock()


def lazy_client() -> PodmanRegistryClient:
    """Process-wide client; the podman connection opens on first use."""
    global _default_client
    with _default_client_lock:
        if _default_client is None:
            _default_client = PodmanRegistryClient()
        return _default_client
