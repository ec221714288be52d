"""Validation and log-safe rendering of user-supplied cloud endpoints."""

import ipaddress
import logging
from urllib.parse import urlsplit

from .errors import InvalidEndpoint

logger = logging.getLogger(__name__)

METADATA_HOSTS = {"169.254.169.254", "metadata.google.internal"}
LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1", "0.0.0.0"}


def truncate_for_error(text: str, max_len: int = 200) -> str:
    """Cut a response body down before it goes into an error message."""
    return text if len(text) <= max_len else text[:max_len]


def sanitize_url_for_log(url: str) -> str:
    """Keep only scheme, host and port so keys in query strings never reach the log."""
    try:
        parts = urlsplit(url)
        port = f":{parts.port}" if parts.port else ""
    except ValueError:
        return "invalid-url"
    if not parts.scheme or not parts.hostname:
        return "invalid-url"
    return f"{parts.scheme}://{parts.hostname}{port}"


def _is_local(host: str) -> bool:
    if host in LOCAL_HOSTS:
        return True
    try:
        return ipaddress.ip_address(host).is_private
    except ValueError:
        return False


def validate_custom_endpoint(url: str) -> None:
    """Check a custom endpoint URL before any request is sent to it.

    Local and private hosts are allowed (self-hosted model servers), plain
    HTTP to a remote host only produces a warning.

    Raises:
        InvalidEndpoint: for non-http(s) schemes, a missing host, embedded
            credentials, or cloud metadata targets
    """
    if not url:
        raise InvalidEndpoint("Endpoint URL is empty")
    try:
        parts = urlsplit(url)
        host = parts.hostname or ""
    except ValueError as e:
        raise InvalidEndpoint(f"Invalid endpoint URL: {e}") from e

    if parts.scheme not in ("http", "https"):
        raise InvalidEndpoint(f'Endpoint must use HTTP or HTTPS (got "{parts.scheme}://")')
    if not host:
        raise InvalidEndpoint("Endpoint URL has no host")
    if host in METADATA_HOSTS:
        raise InvalidEndpoint("Endpoint must not target a cloud metadata address")
    if parts.username or parts.password:
        raise InvalidEndpoint("Endpoint URL must not contain embedded credentials")

    if parts.scheme == "http" and not _is_local(host):
        logger.warning(f"Custom endpoint uses plain HTTP to remote host ({host}). "
                       f"Data will be sent unencrypted.")
