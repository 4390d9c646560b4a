"""Per-image loggers.

Messages about one image go to `image_resolver.image.<name>` so that pull
chatter for a noisy image can be silenced without hiding the rest.
"""

from __future__ import annotations

import logging

IMAGE_LOGGER_ROOT = "image_resolver.image"


def image_logger(image: object) -> logging.Logger:
    """Logger named after the image's canonical name."""
    return logging.getLogger(f"{IMAGE_LOGGER_ROOT}.{image}")
