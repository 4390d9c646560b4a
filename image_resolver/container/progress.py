"""Logging of podman pull progress.

Podman's libpod endpoint reports progress as `{"stream": "..."}` lines while
the docker-compatible endpoint reports `{"status": ..., "id": ...}` entries.
Both shapes are accepted.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Set

logger = logging.getLogger(__name__)

_LAYER_DONE_STATUSES = ("Pull complete", "Already exists")


def decode_progress(chunk: Any) -> Optional[Dict[str, Any]]:
    """Turn one item from a podman pull stream into a dict.

    Returns None for blank or undecodable chunks.
    """
    if isinstance(chunk, dict):
        return chunk
    if isinstance(chunk, (bytes, bytearray)):
        chunk = chunk.decode("utf-8", errors="replace")
    if not isinstance(chunk, str):
        return None
    chunk = chunk.strip()
    if not chunk:
        return None
    try:
        decoded = json.loads(chunk)
    except ValueError:
        # Some podman versions emit plain text lines
        return {"stream": chunk}
    return decoded if isinstance(decoded, dict) else None


class PullProgressLogger:
    """Writes pull progress for one image to that image's logger.

    Raw progress goes to debug. Layer completion and the final image id are
    reported at info so a slow pull visibly makes progress.
    """

    def __init__(self, image_log: logging.Logger, image: str) -> None:
        self.image_log = image_log
        self.image = image
        self._layers_done: Set[str] = set()
        self.image_id: Optional[str] = None

    def on_progress(self, entry: Dict[str, Any]) -> None:
        status = entry.get("status")
        stream = entry.get("stream")
        layer = entry.get("id")

        if status:
            if layer and status in _LAYER_DONE_STATUSES:
                if layer not in self._layers_done:
                    self._layers_done.add(layer)
                    self.image_log.info(
                        "Pulling image %s: layer %s %s (%d done)",
                        self.image,
                        layer,
                        status.lower(),
                        len(self._layers_done),
                    )
            else:
                self.image_log.debug("Pulling image %s: %s %s", self.image, layer or "", status)
        elif stream:
            for line in str(stream).splitlines():
                if line.strip():
                    self.image_log.debug("Pulling image %s: %s", self.image, line.strip())

        images = entry.get("images")
        if images and not status and not stream:
            # libpod reports the resulting image ids in a final entry
            self.image_id = images[0] if isinstance(images, list) else str(images)
        elif layer and not status and not stream and "error" not in entry:
            self.image_id = layer

    def on_complete(self) -> None:
        if self.image_id:
            self.image_log.info("Pull complete for image %s (%s)", self.image, self.image_id)
        else:
            self.image_log.info("Pull complete for image %s", self.image)
