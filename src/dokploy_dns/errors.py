"""Exception types shared across dokploy-dns."""

from __future__ import annotations


class DNSManagerError(Exception):
    """Base class for all dokploy-dns errors."""


class ConfigurationError(DNSManagerError):
    """Required configuration is missing or invalid. Fatal at startup."""


class RuntimeUnavailableError(DNSManagerError):
    """The container runtime could not be queried."""


class InvalidHostnameError(DNSManagerError, ValueError):
    """A hostname cannot be split into subdomain and domain."""


class RegistrarError(DNSManagerError):
    """A registrar API call failed (transport, auth, 4xx/5xx or bad payload)."""

    def __init__(self, operation: str, domain: str, cause: object):
        self.operation = operation
        self.domain = domain
        self.cause = cause
        super().__init__(f"{operation} failed for {domain}: {cause}")
