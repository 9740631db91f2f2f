"""Webhook caller origin extraction.

Reads the ``Origin`` header a webhook trigger received and reduces it to
the caller's registrable domain (``sub.example.com`` -> ``example.com``).
"""

import re
from typing import Any, Dict, Iterable, List, Optional

import tldextract

from core.logging import get_logger

logger = get_logger(__name__)

_SCHEME = re.compile(r"^https?://")

# Bundled public suffix snapshot only: no network fetch, no disk cache
_extract = tldextract.TLDExtract(suffix_list_urls=(), cache_dir=None)


def origin_header(task_runs: Optional[List[Dict[str, Any]]]) -> Optional[str]:
    """Origin header seen by a webhook node, or None.

    Only the first item of the first output of the first task run is read;
    that is the request the trigger received.
    """
    try:
        headers = task_runs[0]["data"]["main"][0][0]["json"]["headers"]
    except (IndexError, KeyError, TypeError):
        return None
    origin = headers.get("origin") if isinstance(headers, dict) else None
    return origin if isinstance(origin, str) else None


def registrable_domain(origin: str) -> Optional[str]:
    """Resolve an origin to its registrable domain using public-suffix rules.

    Returns None for hosts without a public suffix (localhost, IP addresses).
    A port is ignored: ``app.example.com:8443`` resolves to ``example.com``.
    """
    host = _SCHEME.sub("", origin)
    parts = _extract(host)
    if not parts.domain or not parts.suffix:
        return None
    return f"{parts.domain}.{parts.suffix}"


def extract_webhook_domain(webhook_node_names: Iterable[str],
                           run_data: Dict[str, List[Dict[str, Any]]]) -> Optional[str]:
    """Find the caller domain of the webhook nodes that fired.

    Every webhook node is inspected; the last one with a non-empty origin
    wins, in the order ``webhook_node_names`` enumerates them.

    Args:
        webhook_node_names: Names of webhook-capable nodes
        run_data: Per-node task runs of the execution

    Returns:
        Registrable domain, or None when no webhook carried an origin
    """
    domain = None
    for name in webhook_node_names:
        origin = origin_header(run_data.get(name))
        if origin:
            domain = registrable_domain(origin)
            logger.debug("Webhook origin found", node_name=name, domain=domain)
    return domain
