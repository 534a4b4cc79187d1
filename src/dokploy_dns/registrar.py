"""Registrar clients.

A registrar owns the DNS zones of our domains. Clients create and delete
CNAME records on behalf of the reconciliation engine and report every
failure as ``RegistrarError``. Retry policy belongs to the caller.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List

import requests
from requests.auth import HTTPBasicAuth

from .errors import RegistrarError

logger = logging.getLogger(__name__)

SIMPLY_API_URL = "https://api.simply.com/2"
DEFAULT_TTL = 3600


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class RegistrarRecord:
    """A DNS record as reported by the registrar."""

    record_id: str
    name: str
    type: str
    data: str
    ttl: int = DEFAULT_TTL


# =============================================================================
# Registrar Interface and Implementations
# =============================================================================


class Registrar(ABC):
    """Abstract base class for registrar APIs."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the registrar name for logging."""
        pass

    @abstractmethod
    def create_cname(self, domain: str, subdomain: str, target: str, ttl: int = DEFAULT_TTL) -> str:
        """Create ``subdomain.domain CNAME target`` and return the record id."""
        pass

    @abstractmethod
    def delete_record(self, domain: str, record_id: str) -> bool:
        """Delete a record by id."""
        pass

    @abstractmethod
    def list_records(self, domain: str) -> List[RegistrarRecord]:
        """List every record of a domain."""
        pass


class SimplyRegistrar(Registrar):
    """Simply.com API v2 client.

    Credentials are encoded once into the session; the client keeps no
    other state, so it is safe to share between threads.
    """

    def __init__(
        self,
        account_name: str,
        api_key: str,
        base_url: str = SIMPLY_API_URL,
        timeout_seconds: float = 10.0,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._session = requests.Session()
        self._session.auth = HTTPBasicAuth(account_name, api_key)
        self._session.headers.update({"Accept": "application/json"})

    @property
    def name(self) -> str:
        return "Simply.com"

    def _records_url(self, domain: str) -> str:
        return f"{self._base_url}/my/products/{domain}/dns/records"

    def create_cname(self, domain: str, subdomain: str, target: str, ttl: int = DEFAULT_TTL) -> str:
        payload = {"type": "CNAME", "name": subdomain, "data": target, "ttl": ttl}
        try:
            response = self._session.post(
                self._records_url(domain), json=payload, timeout=self._timeout
            )
            response.raise_for_status()
            record_id = _record_id_from_response(response.json())
        except (requests.exceptions.RequestException, json.JSONDecodeError, ValueError) as e:
            raise RegistrarError("create", domain, e) from e

        logger.info(f"Created CNAME record: {subdomain}.{domain} -> {target} (id {record_id})")
        return record_id

    def delete_record(self, domain: str, record_id: str) -> bool:
        try:
            response = self._session.delete(
                f"{self._records_url(domain)}/{record_id}", timeout=self._timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise RegistrarError("delete", domain, e) from e

        logger.info(f"Deleted DNS record {record_id} from {domain}")
        return True

    def list_records(self, domain: str) -> List[RegistrarRecord]:
        try:
            response = self._session.get(self._records_url(domain), timeout=self._timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, json.JSONDecodeError, ValueError) as e:
            raise RegistrarError("list", domain, e) from e

        raw_records = data.get("records") if isinstance(data, dict) else None
        if not isinstance(raw_records, list):
            raise RegistrarError("list", domain, f"unexpected response format: {data!r}")

        records: List[RegistrarRecord] = []
        for r in raw_records:
            if not isinstance(r, dict) or r.get("record_id", r.get("id")) is None:
                logger.warning(f"Skipping malformed record from {self.name}: {r}")
                continue
            try:
                ttl = int(r.get("ttl") or DEFAULT_TTL)
            except (TypeError, ValueError):
                ttl = DEFAULT_TTL
            records.append(
                RegistrarRecord(
                    record_id=str(r.get("record_id", r.get("id"))),
                    name=str(r.get("name") or ""),
                    type=str(r.get("type") or "").upper(),
                    data=str(r.get("data") or ""),
                    ttl=ttl,
                )
            )
        return records


def _record_id_from_response(data: Any) -> str:
    """Pull the new record id out of a create response.

    Simply.com has answered both ``{"record": {"id": ..}}`` and
    ``{"record": [{"id": ..}]}``.
    """
    record = data.get("record") if isinstance(data, dict) else None
    if isinstance(record, list):
        record = record[0] if record else None
    if not isinstance(record, dict) or record.get("id") is None:
        raise ValueError(f"no record id in response: {data!r}")
    return str(record["id"])
