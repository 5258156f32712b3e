"""Rate limiting for the gigmarket API.

Keys requests by client IP. X-Forwarded-For is honoured only when the
direct peer is a trusted proxy, so clients cannot pick their own key.
"""

import ipaddress
import logging
import os
from functools import lru_cache

from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import get_settings

logger = logging.getLogger(__name__)

# Private ranges and localhost by default; override with TRUSTED_PROXY_CIDRS
_DEFAULT_TRUSTED_CIDRS = (
    "10.0.0.0/8",
    "172.16.0.0/12",
    "192.168.0.0/16",
    "127.0.0.0/8",
    "::1/128",
)


@lru_cache
def trusted_networks() -> tuple:
    """Parse trusted proxy CIDRs once; invalid entries are skipped."""
    raw = os.environ.get("TRUSTED_PROXY_CIDRS", "")
    cidrs = [s.strip() for s in raw.split(",") if s.strip()] or list(_DEFAULT_TRUSTED_CIDRS)
    networks = []
    for cidr in cidrs:
        try:
            networks.append(ipaddress.ip_network(cidr, strict=False))
        except ValueError:
            logger.warning("Ignoring invalid trusted proxy CIDR %r", cidr)
    return tuple(networks)


def is_trusted_proxy(ip_str: str) -> bool:
    try:
        addr = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    return any(addr in network for network in trusted_networks())


def get_client_ip(request) -> str:
    """Client IP for rate limiting: leftmost forwarded address behind a trusted proxy."""
    direct_ip = get_remote_address(request)
    if is_trusted_proxy(direct_ip):
        forwarded_for = request.headers.get("x-forwarded-for", "")
        client_ip = forwarded_for.split(",")[0].strip()
        if client_ip:
            return client_ip
    return direct_ip


limiter = Limiter(key_func=get_client_ip, enabled=get_settings().rate_limit_enabled)
