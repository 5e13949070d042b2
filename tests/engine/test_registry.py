"""Tests for the HTTP registry adapter."""

from __future__ import annotations

import json

import httpx
import pytest

from annuairesync.core.types import MailboxType, Operation
from annuairesync.engine.registry import HTTPRegistryAdapter, RegistryError

BASE_URL = "https://registry.example/api"


def make_adapter(api_key: str | None = "secret") -> HTTPRegistryAdapter:
    return HTTPRegistryAdapter(BASE_URL + "/", "OP1", api_key=api_key)


class TestRequests:
    """Tests for request building."""

    def test_publish_personal(self, httpx_mock, snapshot) -> None:  # type: ignore[no-untyped-def]
        """Publish should POST the owner block."""
        httpx_mock.add_response(
            method="POST", url=f"{BASE_URL}/bal", status_code=201, json={"code": "CREATED", "idBAL": "B1"}
        )

        with make_adapter() as adapter:
            result = adapter.publish(snapshot())

        assert result.success is True
        assert result.code == "CREATED"
        assert result.data == {"code": "CREATED", "idBAL": "B1"}

        request = httpx_mock.get_request()
        assert request.headers["X-API-Key"] == "secret"
        payload = json.loads(request.content)
        assert payload["idOperateur"] == "OP1"
        assert payload["typeBAL"] == "PERS"
        assert payload["adresseBAL"] == "dr.martin@chu.example"
        assert payload["publication"] is True
        assert payload["dateCreation"] == "2026-01-15T09:30:00Z"
        assert payload["titulaire"]["idNational"] == "10001234567"
        assert "organisation" not in payload

    def test_publish_organizational_on_red_list(self, httpx_mock, snapshot) -> None:  # type: ignore[no-untyped-def]
        """Organizational mailboxes should carry the organization block."""
        httpx_mock.add_response(method="POST", url=f"{BASE_URL}/bal", status_code=201, json={})

        with make_adapter() as adapter:
            adapter.publish(
                snapshot("secretariat@chu.example", MailboxType.ORGANIZATIONAL, hidden_from_directory=True)
            )

        payload = json.loads(httpx_mock.get_request().content)
        assert payload["typeBAL"] == "ORG"
        assert payload["publication"] is False
        assert payload["organisation"] == {"idFiness": "750000001", "raisonSociale": "CHU Example"}
        assert "titulaire" not in payload

    def test_unpublish(self, httpx_mock, snapshot) -> None:  # type: ignore[no-untyped-def]
        """Unpublish should DELETE the entry of the address."""
        httpx_mock.add_response(
            method="DELETE", url=f"{BASE_URL}/bal/dr.martin@chu.example", status_code=204
        )

        with make_adapter() as adapter:
            result = adapter.apply(Operation.UNPUBLISH, snapshot())

        assert httpx_mock.get_request().content == b""
        assert result.success is True
        assert result.code == "204"
        assert result.data is None

    def test_update(self, httpx_mock, snapshot) -> None:  # type: ignore[no-untyped-def]
        """Update should PUT the payload with a modification date."""
        httpx_mock.add_response(
            method="PUT", url=f"{BASE_URL}/bal/dr.martin@chu.example", json={"message": "updated"}
        )

        with make_adapter() as adapter:
            result = adapter.apply(Operation.UPDATE, snapshot())

        payload = json.loads(httpx_mock.get_request().content)
        assert payload["dateModification"].endswith("Z")
        assert result.message == "updated"

    def test_no_api_key(self, httpx_mock, snapshot) -> None:  # type: ignore[no-untyped-def]
        """Without a key no header should be sent."""
        httpx_mock.add_response(method="POST", url=f"{BASE_URL}/bal", status_code=201, json={})
        with make_adapter(api_key=None) as adapter:
            adapter.publish(snapshot())
        assert "X-API-Key" not in httpx_mock.get_request().headers


class TestErrors:
    """Tests for error mapping."""

    @pytest.mark.parametrize(
        ("status_code", "expected"),
        [
            (400, "Invalid request: bad RPPS"),
            (401, "Registry authentication failed"),
            (409, "Conflict: bad RPPS"),
            (429, "Too many requests to the registry"),
            (503, "Registry error (503): bad RPPS"),
        ],
    )
    def test_http_errors(self, httpx_mock, snapshot, status_code: int, expected: str) -> None:  # type: ignore[no-untyped-def]
        """HTTP errors should raise RegistryError with the mapped message."""
        httpx_mock.add_response(status_code=status_code, json={"message": "bad RPPS"})

        with make_adapter() as adapter, pytest.raises(RegistryError) as excinfo:
            adapter.publish(snapshot())

        assert str(excinfo.value) == expected
        assert excinfo.value.status_code == status_code

    def test_unreachable(self, httpx_mock, snapshot) -> None:  # type: ignore[no-untyped-def]
        """Connection failures should raise RegistryError."""
        httpx_mock.add_exception(httpx.ConnectError("connection refused"))

        with make_adapter() as adapter, pytest.raises(RegistryError, match="unreachable"):
            adapter.publish(snapshot())

    def test_non_json_error_body(self, httpx_mock, snapshot) -> None:  # type: ignore[no-untyped-def]
        """A plain-text error body should fall back to a generic message."""
        httpx_mock.add_response(status_code=400, text="<html>oops</html>")

        with make_adapter() as adapter, pytest.raises(RegistryError) as excinfo:
            adapter.publish(snapshot())
        assert str(excinfo.value) == "Invalid request: registry API error"
