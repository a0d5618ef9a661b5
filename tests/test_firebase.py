from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from lab_sync.config import FirebaseConfig
from lab_sync.errors import LabSyncError, TransportError
from lab_sync.firebase import FirebaseClient


def _response(status: int, text: str = "null", payload=None) -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.text = text
    response.json.return_value = payload
    return response


@pytest.fixture
def session() -> MagicMock:
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(session: MagicMock) -> FirebaseClient:
    conf = FirebaseConfig(database_url="https://db.example.com/", secret="s3cret")
    return FirebaseClient(conf, session=session)


def test_build_url_appends_json_suffix(client: FirebaseClient) -> None:
    assert client.build_url("/richiesteprimarie/") == "https://db.example.com/richiesteprimarie.json"
    assert client.build_url("") == "https://db.example.com/.json"


def test_get_sends_secret_as_auth_param(client: FirebaseClient, session: MagicMock) -> None:
    session.request.return_value = _response(200, '{"-a": {"email": "x"}}', {"-a": {"email": "x"}})

    assert client.get("richiesteprimarie") == {"-a": {"email": "x"}}
    session.request.assert_called_once_with(
        "GET",
        "https://db.example.com/richiesteprimarie.json",
        params={"auth": "s3cret"},
        json=None,
        timeout=30,
    )


def test_get_of_missing_node_returns_none(client: FirebaseClient, session: MagicMock) -> None:
    session.request.return_value = _response(404, "not found")

    assert client.get("nowhere") is None


def test_get_of_null_node_returns_none(client: FirebaseClient, session: MagicMock) -> None:
    session.request.return_value = _response(200, "null")

    assert client.get("empty") is None


def test_server_errors_raise_transport_error(client: FirebaseClient, session: MagicMock) -> None:
    session.request.return_value = _response(500, "boom")

    with pytest.raises(TransportError) as excinfo:
        client.patch("node", {"a": 1})

    assert excinfo.value.status == 500
    assert excinfo.value.method == "PATCH"
    assert session.request.call_count == 1


def test_delete_of_missing_node_is_an_error(client: FirebaseClient, session: MagicMock) -> None:
    session.request.return_value = _response(404, "not found")

    with pytest.raises(TransportError):
        client.delete("node")


def test_network_failures_raise_transport_error(client: FirebaseClient, session: MagicMock) -> None:
    session.request.side_effect = requests.ConnectionError("refused")

    with pytest.raises(TransportError) as excinfo:
        client.get("node")

    assert excinfo.value.status is None


def test_post_returns_generated_name(client: FirebaseClient, session: MagicMock) -> None:
    session.request.return_value = _response(200, '{"name": "-new"}', {"name": "-new"})

    assert client.post("node", {"email": "x"}) == {"name": "-new"}
    assert session.request.call_args.kwargs["json"] == {"email": "x"}


def test_missing_credentials_are_reported(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FIREBASE_SECRET", raising=False)
    client = FirebaseClient(FirebaseConfig(database_url="https://db.example.com"))

    with pytest.raises(LabSyncError, match="FIREBASE_SECRET"):
        client.get("node")


def test_malformed_success_body_raises_transport_error(
    client: FirebaseClient, session: MagicMock
) -> None:
    response = _response(200, "<html>proxy error</html>")
    response.json.side_effect = requests.JSONDecodeError("Expecting value", "<html>", 0)
    session.request.return_value = response

    with pytest.raises(TransportError) as excinfo:
        client.patch("node", {"a": 1})

    assert excinfo.value.status == 200
    assert excinfo.value.body == "<html>proxy error</html>"
