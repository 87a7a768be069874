"""Request origin and client identification helpers.

- Origin allowlist: the public site origin, local development hosts and any
  extra configured origins. A request is rejected only when it presents an
  Origin or Referer that is not on the list.
- Client identifier: forwarded headers are honoured only when the direct peer
  is a trusted proxy, so clients cannot spoof their rate-limit key.
"""

from collections.abc import Iterable, Mapping
from urllib.parse import urlparse

from foamsanat.config.settings import Settings


LOCAL_ORIGINS = ("http://localhost:3000", "http://localhost")

UNKNOWN_CLIENT = "unknown"


def get_allowed_origins(settings: Settings) -> frozenset[str]:
    """Build the set of request origins accepted for public submissions."""
    return frozenset(
        {settings.site_origin, *LOCAL_ORIGINS, *settings.extra_allowed_origins}
    )


def _origin_of(url: str) -> str | None:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


def check_request_origin(
    origin: str | None,
    referer: str | None,
    allowed_origins: Iterable[str],
) -> str | None:
    """Validate Origin/Referer against the allowlist.

    Args:
        origin: Value of the Origin header, if any.
        referer: Value of the Referer header, if any.
        allowed_origins: Accepted origins (scheme://host[:port]).

    Returns:
        An error message when the request must be rejected, otherwise None.
    """
    allowed = set(allowed_origins)

    if origin and origin not in allowed:
        return "Request origin is not allowed."

    if referer:
        referer_origin = _origin_of(referer)
        if referer_origin is None or referer_origin not in allowed:
            return "Request referer is not allowed."

    return None


def get_client_identifier(
    headers: Mapping[str, str],
    peer_host: str | None,
    trusted_proxies: Iterable[str],
) -> str:
    """Resolve the client address used as the rate-limit key.

    Args:
        headers: Request headers (case-insensitive mapping).
        peer_host: Address of the direct TCP peer.
        trusted_proxies: Peers whose forwarding headers are believed.

    Returns:
        The client address, or ``"unknown"`` when none is available.
    """
    if peer_host and peer_host in set(trusted_proxies):
        forwarded_for = headers.get("x-forwarded-for")
        if forwarded_for:
            first_hop = forwarded_for.split(",")[0].strip()
            if first_hop:
                return first_hop

        real_ip = (headers.get("x-real-ip") or "").strip()
        if real_ip:
            return real_ip

    return peer_host or UNKNOWN_CLIENT
