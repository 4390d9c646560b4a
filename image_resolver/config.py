"""Configuration management for image-resolver.

Values are looked up in order: environment variable, options object passed
to `initialize()`, the `[image_resolver]` section of the INI file named by
`IMAGE_RESOLVER_CONFIG`, then the built-in default.
"""

from __future__ import annotations

import configparser
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

CONFIG_SECTION = "image_resolver"

# Module-level config cache
_config: Optional[Dict[str, Any]] = None
_options: Optional[Any] = None  # Options object supplied by the embedding application


def initialize(options: Any) -> None:
    """Initialize config module with an options object.

    Attributes named `image_resolver_<key>` on the object take precedence over
    the config file.

    Args:
        options: Parsed options object from the host application
    """
    global _options
    _options = options
    logger.debug("Config module initialized with options object")


def _parse_config_file(config_file: Optional[str] = None) -> Dict[str, Any]:
    """Read the [image_resolver] section of an INI file.

    Args:
        config_file: Path to config file. None or a missing file yields {}.

    Returns:
        Dict of raw string values from the section
    """
    if not config_file:
        return {}

    parser = configparser.ConfigParser()
    try:
        read = parser.read(config_file)
    except configparser.Error as exc:
        logger.warning("Failed to parse config file %s: %s", config_file, exc)
        return {}

    if not read:
        logger.debug("Config file %s not found", config_file)
        return {}
    if not parser.has_section(CONFIG_SECTION):
        logger.debug("Config file %s has no [%s] section", config_file, CONFIG_SECTION)
        return {}
    return dict(parser.items(CONFIG_SECTION))


def _get_config() -> Dict[str, Any]:
    """Get parsed config dict, initializing if needed."""
    global _config
    if _config is None:
        config_file = os.environ.get("IMAGE_RESOLVER_CONFIG")
        _config = _parse_config_file(config_file)
    return _config


def _get_config_value(
    key: str,
    default: Any,
    env_var: Optional[str] = None,
    converter: Optional[Callable[[Any], Any]] = None,
) -> Any:
    """Get config value with fallback chain: env var > options > config file > default.

    Args:
        key: Config key name (in [image_resolver] section)
        default: Default value if not found
        env_var: Optional environment variable name (e.g., IMAGE_RESOLVER_KEY)
        converter: Optional function to convert string value (e.g., int, bool)

    Returns:
        Config value (converted if converter provided)
    """
    if env_var:
        env_value = os.environ.get(env_var)
        if env_value is not None:
            if converter:
                try:
                    return converter(env_value)
                except (ValueError, TypeError):
                    logger.warning(
                        "Invalid value for %s: %s, using default", env_var, env_value
                    )
                    return default
            return env_value

    if _options is not None:
        option_key = f"image_resolver_{key}"
        if hasattr(_options, option_key):
            value = getattr(_options, option_key)
            if converter and isinstance(value, str):
                try:
                    return converter(value)
                except (ValueError, TypeError):
                    logger.warning("Invalid value for %s: %s, using default", key, value)
                    return default
            return value

    config = _get_config()
    value = config.get(key)
    if value is not None:
        if converter:
            try:
                return converter(value)
            except (ValueError, TypeError):
                logger.warning(
                    "Invalid value for config key %s: %s, using default", key, value
                )
                return default
        return value

    return default


def _parse_seconds(value: Any) -> float:
    """Parse a non-negative duration in seconds."""
    seconds = float(value)
    if seconds < 0:
        raise ValueError(f"negative duration: {value}")
    return seconds


def _parse_optional(value: Any) -> Optional[str]:
    """Blank strings mean "unset"."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _parse_mapping(value: Any) -> Mapping[str, str]:
    """Parse a mapping from config.

    Accepts:
    - Dict: {"key": "value"}
    - String: "key1=value1,key2=value2"
    """
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        mapping = {}
        for item in value.split(","):
            if "=" in item:
                key, val = item.split("=", 1)
                mapping[key.strip()] = val.strip()
            elif item.strip():
                logger.warning("Ignoring malformed mapping entry: %s", item)
        return mapping
    return {}


def image_pull_policy() -> str:
    """Image pull policy: 'if-not-present' | 'always' | 'never' | 'max-age'."""
    return _get_config_value(
        "image_pull_policy",
        "if-not-present",
        env_var="IMAGE_RESOLVER_IMAGE_PULL_POLICY",
    )


def image_pull_max_age() -> float:
    """Maximum local image age in seconds for the 'max-age' policy."""
    return _get_config_value(
        "image_pull_max_age",
        86400.0,
        env_var="IMAGE_RESOLVER_IMAGE_PULL_MAX_AGE",
        converter=_parse_seconds,
    )


def platform_override() -> Optional[str]:
    """Platform requested on every pull, e.g. "linux/amd64". Unset means runtime default."""
    return _get_config_value(
        "platform_override",
        None,
        env_var="IMAGE_RESOLVER_PLATFORM_OVERRIDE",
        converter=_parse_optional,
    )


def platform_retry() -> Optional[str]:
    """Platform to retry with when the registry has no manifest for the first one."""
    return _get_config_value(
        "platform_retry",
        None,
        env_var="IMAGE_RESOLVER_PLATFORM_RETRY",
        converter=_parse_optional,
    )


def pull_retry_time_limit() -> float:
    """Wall-clock budget in seconds for retrying transient pull failures."""
    return _get_config_value(
        "pull_retry_time_limit",
        120.0,
        env_var="IMAGE_RESOLVER_PULL_RETRY_TIME_LIMIT",
        converter=_parse_seconds,
    )


def pull_pause_timeout() -> float:
    """Seconds without pull progress before an attempt is abandoned and retried."""
    return _get_config_value(
        "pull_pause_timeout",
        30.0,
        env_var="IMAGE_RESOLVER_PULL_PAUSE_TIMEOUT",
        converter=_parse_seconds,
    )


def hub_image_name_prefix() -> str:
    """Prefix applied to registry-less image names, e.g. "mirror.example.com/hub/"."""
    return _get_config_value(
        "hub_image_name_prefix",
        "",
        env_var="IMAGE_RESOLVER_HUB_IMAGE_NAME_PREFIX",
        converter=lambda v: str(v).strip(),
    )


def image_substitutions() -> Mapping[str, str]:
    """Exact image name rewrites, "from=to" pairs separated by commas."""
    value = _get_config_value(
        "image_substitutions",
        {},
        env_var="IMAGE_RESOLVER_IMAGE_SUBSTITUTIONS",
    )
    return _parse_mapping(value)


def podman_socket() -> str:
    """Podman service URI passed to podman-py PodmanClient.

    - unix:///run/podman/podman.sock (rootful service)
    - unix:///run/user/<uid>/podman/podman.sock (rootless service)
    """
    return _get_config_value(
        "podman_socket",
        "unix:///run/podman/podman.sock",
        env_var="IMAGE_RESOLVER_PODMAN_SOCKET",
    )


@dataclass(frozen=True)
class ResolverSettings:
    """Snapshot of the values consulted while resolving one image."""

    image_pull_policy: str = "if-not-present"
    image_pull_max_age: float = 86400.0
    platform_override: Optional[str] = None
    platform_retry: Optional[str] = None
    pull_retry_time_limit: float = 120.0
    pull_pause_timeout: float = 30.0
    hub_image_name_prefix: str = ""
    image_substitutions: Mapping[str, str] = field(default_factory=dict)
    podman_socket: str = "unix:///run/podman/podman.sock"


def load_settings() -> ResolverSettings:
    """Read every setting once and freeze the result."""
    return ResolverSettings(
        image_pull_policy=image_pull_policy(),
        image_pull_max_age=image_pull_max_age(),
        platform_override=platform_override(),
        platform_retry=platform_retry(),
        pull_retry_time_limit=pull_retry_time_limit(),
        pull_pause_timeout=pull_pause_timeout(),
        hub_image_name_prefix=hub_image_name_prefix(),
        image_substitutions=dict(image_substitutions()),
        podman_socket=podman_socket(),
    )


def reset_config() -> None:
    """Reset config cache (useful for testing)."""
    global _config, _options
    _config = None
    _options = None
