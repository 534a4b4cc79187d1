"""Traefik label parsing.

Turns a container's label map into the hostnames declared by its Traefik
HTTP routers. Parsing is best-effort: malformed rules contribute no
hostnames and nothing here ever raises, except ``split_hostname`` which
rejects hostnames without a subdomain.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any, Dict, List, Tuple

from .errors import InvalidHostnameError

logger = logging.getLogger(__name__)

ENABLE_LABEL = "traefik.enable"
LABEL_PREFIX = "traefik."

ROUTER_RULE_RE = re.compile(r"^traefik\.http\.routers\.(?P<router>.+)\.rule$")
# Arguments may not contain parentheses, so unbalanced clauses never match.
HOST_CLAUSE_RE = re.compile(r"\bHost\((?P<args>[^()]*)\)")
HOSTNAME_RE = re.compile(r"^[A-Za-z0-9*_](?:[A-Za-z0-9_.-]*[A-Za-z0-9_])?$")
QUOTE_CHARS = "`\"'"


def _as_label_dict(labels: Any) -> Dict[str, str]:
    if not isinstance(labels, Mapping):
        return {}
    return {str(k): "" if v is None else str(v) for k, v in labels.items()}


def is_enabled(labels: Any) -> bool:
    """Return True when the container opts into Traefik routing."""
    return _as_label_dict(labels).get(ENABLE_LABEL) == "true"


def parse_host_rule(rule: str) -> List[str]:
    """Extract hostnames from every ``Host(...)`` clause of a router rule.

    Accepts backtick, double-quoted, single-quoted and bare arguments, and
    the comma separated multi-host form ``Host(`a`, `b`)``.
    """
    hostnames: List[str] = []
    for match in HOST_CLAUSE_RE.finditer(rule or ""):
        for raw in match.group("args").split(","):
            token = raw.strip().strip(QUOTE_CHARS).strip()
            if not token:
                continue
            if not HOSTNAME_RE.match(token):
                logger.debug(f"Ignoring malformed host token {raw!r} in rule {rule!r}")
                continue
            hostnames.append(token.lower())
    return hostnames


def router_hostnames(labels: Any) -> Dict[str, List[str]]:
    """Map router name -> hostnames declared by that router's rule."""
    result: Dict[str, List[str]] = {}
    for key, value in _as_label_dict(labels).items():
        match = ROUTER_RULE_RE.match(key)
        if not match:
            continue
        hosts = parse_host_rule(value)
        if hosts:
            result[match.group("router")] = list(dict.fromkeys(hosts))
        else:
            logger.debug(f"Router rule {key} declares no usable Host() clause")
    return result


def extract_hostnames(labels: Any) -> List[str]:
    """Return the de-duplicated hostnames a container declares.

    Returns an empty list unless ``traefik.enable`` is exactly ``"true"``.
    """
    if not is_enabled(labels):
        return []
    hostnames: List[str] = []
    for hosts in router_hostnames(labels).values():
        hostnames.extend(hosts)
    return list(dict.fromkeys(hostnames))


def traefik_labels(labels: Any) -> Dict[str, str]:
    """Return only the ``traefik.*`` labels."""
    return {k: v for k, v in _as_label_dict(labels).items() if k.startswith(LABEL_PREFIX)}


def split_hostname(hostname: str) -> Tuple[str, str]:
    """Split ``app.example.com`` into ``("app", "example.com")``.

    The domain is always the last two labels. Hostnames with fewer than
    three labels have no subdomain and are rejected.
    """
    parts = (hostname or "").strip().rstrip(".").split(".")
    if len(parts) < 3 or any(not part for part in parts):
        raise InvalidHostnameError(f"Hostname '{hostname}' has no subdomain component")
    return ".".join(parts[:-2]), ".".join(parts[-2:])
