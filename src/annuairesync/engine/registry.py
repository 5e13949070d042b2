"""Immediate-mode channel to the directory registry.

This module provides:
- RegistryAdapter: abstract interface for one publish/unpublish/update call
- HTTPRegistryAdapter: httpx client for the registry REST API
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote

import httpx

from annuairesync.core.formats import format_timestamp
from annuairesync.core.types import MailboxSnapshot, MailboxType, Operation

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Raised when a registry call fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class RegistryResult:
    """Outcome of one registry call.

    Attributes:
        success: True if the registry accepted the change.
        code: Registry response code, if any.
        message: Registry response message, if any.
        data: Response payload, if any.
    """

    success: bool
    code: str | None = None
    message: str | None = None
    data: Any = None


class RegistryAdapter(ABC):
    """Abstract interface for immediate registry calls."""

    @abstractmethod
    def publish(self, snapshot: MailboxSnapshot) -> RegistryResult:
        """Publish a mailbox in the directory."""

    @abstractmethod
    def unpublish(self, snapshot: MailboxSnapshot) -> RegistryResult:
        """Remove a mailbox from the directory."""

    @abstractmethod
    def update(self, snapshot: MailboxSnapshot) -> RegistryResult:
        """Update the directory entry of a mailbox."""

    def apply(self, operation: Operation, snapshot: MailboxSnapshot) -> RegistryResult:
        """Dispatch an operation to the matching call.

        Args:
            operation: Requested directory change.
            snapshot: Mailbox attributes captured at enqueue time.

        Returns:
            Registry outcome.

        Raises:
            RegistryError: If the call fails.
        """
        if operation is Operation.PUBLISH:
            return self.publish(snapshot)
        if operation is Operation.UNPUBLISH:
            return self.unpublish(snapshot)
        return self.update(snapshot)


# HTTP status to error message, as reported by the registry API
_ERROR_MESSAGES: dict[int, str] = {
    400: "Invalid request: {message}",
    401: "Registry authentication failed",
    403: "Access to the registry denied",
    404: "Resource not found in the registry",
    409: "Conflict: {message}",
    429: "Too many requests to the registry",
}


class HTTPRegistryAdapter(RegistryAdapter):
    """HTTP client for the registry REST API."""

    def __init__(
        self,
        base_url: str,
        operator_id: str,
        api_key: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the adapter.

        Args:
            base_url: Base URL of the registry API.
            operator_id: Operator identifier sent with each publication.
            api_key: API key sent in the X-API-Key header.
            timeout: Request timeout in seconds.
        """
        self._base_url = base_url.rstrip("/")
        self._operator_id = operator_id
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["X-API-Key"] = api_key
        self._client = httpx.Client(
            base_url=self._base_url,
            timeout=timeout,
            headers=headers,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> HTTPRegistryAdapter:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _handle_response(self, response: httpx.Response) -> RegistryResult:
        """Convert a response to a result, raising on HTTP errors."""
        try:
            data = response.json() if response.content else None
        except ValueError:
            data = None
        body = data if isinstance(data, dict) else {}
        message = body.get("message") or body.get("error")

        if response.status_code >= 400:
            template = _ERROR_MESSAGES.get(
                response.status_code, f"Registry error ({response.status_code}): {{message}}"
            )
            raise RegistryError(
                template.format(message=message or "registry API error"), response.status_code
            )

        return RegistryResult(
            success=True,
            code=str(body.get("code") or response.status_code),
            message=message,
            data=data,
        )

    def _request(self, method: str, url: str, payload: dict[str, Any] | None = None) -> RegistryResult:
        try:
            response = self._client.request(method, url, json=payload)
        except httpx.RequestError as e:
            raise RegistryError(f"Registry unreachable: {e}") from e
        return self._handle_response(response)

    @staticmethod
    def _entry_url(snapshot: MailboxSnapshot) -> str:
        return f"/bal/{quote(snapshot.address, safe='@')}"

    def _payload(self, snapshot: MailboxSnapshot) -> dict[str, Any]:
        """Build the registry payload for a mailbox."""
        created_at = snapshot.created_at or datetime.now(UTC)
        payload: dict[str, Any] = {
            "idOperateur": self._operator_id,
            "typeBAL": snapshot.mailbox_type.code,
            "adresseBAL": snapshot.address,
            "publication": not snapshot.hidden_from_directory,
            "dateCreation": format_timestamp(created_at),
        }
        if snapshot.mailbox_type is MailboxType.PERSONAL:
            payload["titulaire"] = {
                "idNational": snapshot.national_id,
                "nom": snapshot.last_name,
                "prenom": snapshot.first_name,
                "profession": snapshot.profession,
                "specialite": snapshot.specialty,
            }
        elif snapshot.mailbox_type is MailboxType.ORGANIZATIONAL:
            payload["organisation"] = {
                "idFiness": snapshot.finess,
                "raisonSociale": snapshot.organization_name,
            }
        else:
            payload["application"] = {
                "idFiness": snapshot.finess,
                "raisonSociale": snapshot.organization_name,
            }
        return payload

    def publish(self, snapshot: MailboxSnapshot) -> RegistryResult:
        """Publish a mailbox with POST /bal."""
        result = self._request("POST", "/bal", self._payload(snapshot))
        logger.info("Published %s in the registry", snapshot.address)
        return result

    def unpublish(self, snapshot: MailboxSnapshot) -> RegistryResult:
        """Remove a mailbox with DELETE /bal/<address>."""
        result = self._request("DELETE", self._entry_url(snapshot))
        logger.info("Unpublished %s from the registry", snapshot.address)
        return result

    def update(self, snapshot: MailboxSnapshot) -> RegistryResult:
        """Update a mailbox with PUT /bal/<address>."""
        payload = self._payload(snapshot)
        payload["dateModification"] = format_timestamp(datetime.now(UTC))
        result = self._request("PUT", self._entry_url(snapshot), payload)
        logger.info("Updated %s in the registry", snapshot.address)
        return result
