from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import pytest
import requests

from schemasync.errors import (
    ArtifactNotFound,
    HttpError,
    InvalidSchema,
    NetworkError,
    ParseError,
    VersionNotFound,
)
from schemasync.models import CompatibilityLevel, ContentReference, SchemaFormat, VersionMetadata
from schemasync.registry_client import (
    CONTENT_TYPE_JSON,
    CONTENT_TYPE_PROTOBUF,
    CONTENT_TYPE_YAML,
    RegistryClient,
    content_type_for,
    pick_latest,
)
from schemasync.retry import RetryConfig

BASE = "https://registry.example.com/apis/registry/v3"


@dataclass
class _DummyResponse:
    status_code: int
    payload: Any = None
    raw: str | None = None
    headers: dict[str, str] = field(default_factory=dict)

    def json(self) -> Any:
        return json.loads(self.text)

    @property
    def text(self) -> str:
        if self.raw is not None:
            return self.raw
        if self.payload is None:
            return ""
        return json.dumps(self.payload)


class _DummySession:
    def __init__(self, responses: list[Any]) -> None:
        self._responses = list(responses)
        self.headers: dict[str, str] = {}
        self.request_log: list[dict[str, Any]] = []

    def request(  # noqa: PLR0913
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any | None = None,
        data: bytes | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> _DummyResponse:
        self.request_log.append(
            {
                "method": method,
                "url": url,
                "params": params,
                "json": json,
                "data": data,
                "headers": headers or {},
                "timeout": timeout,
            }
        )
        if not self._responses:
            raise AssertionError("No more dummy responses available")
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class _FixedToken:
    def __init__(self) -> None:
        self.calls = 0

    def get_valid_token(self) -> str:
        self.calls += 1
        return "tok-xyz"


def _client(responses: list[Any], **kwargs: Any) -> tuple[RegistryClient, _DummySession]:
    session = _DummySession(responses)
    kwargs.setdefault("retry", RetryConfig(attempts=1, base_sleep=0))
    client = RegistryClient(BASE, session=session, **kwargs)  # type: ignore[arg-type]
    return client, session


def test_content_type_for_formats():
    assert content_type_for(SchemaFormat.PROTOBUF, "proto") == CONTENT_TYPE_PROTOBUF
    assert content_type_for(SchemaFormat.OPENAPI, "yml") == CONTENT_TYPE_YAML
    assert content_type_for(SchemaFormat.OPENAPI, "json") == CONTENT_TYPE_JSON
    assert content_type_for(SchemaFormat.AVRO) == CONTENT_TYPE_JSON


def test_pick_latest_orders_numerically():
    versions = [VersionMetadata(v, "g", "a") for v in ("9", "10", "2")]
    assert pick_latest(versions).version == "10"


def test_pick_latest_mixed_version_styles():
    versions = [VersionMetadata(v, "g", "a") for v in ("1.2.0", "1.10.0", "draft")]
    assert pick_latest(versions).version == "1.10.0"


def test_metadata_not_found_returns_none():
    client, session = _client([_DummyResponse(404, {"message": "not found"})])
    assert client.get_artifact_metadata("com.acme", "Customer") is None
    assert session.request_log[0]["url"] == f"{BASE}/groups/com.acme/artifacts/Customer"
    assert session.request_log[0]["method"] == "GET"


def test_metadata_is_parsed():
    client, _ = _client(
        [_DummyResponse(200, {"groupId": "g", "artifactId": "Customer", "artifactType": "AVRO"})]
    )
    meta = client.get_artifact_metadata("g", "Customer")
    assert meta is not None
    assert (meta.group_id, meta.artifact_id, meta.artifact_type) == ("g", "Customer", "AVRO")


def test_path_segments_are_escaped():
    client, session = _client([_DummyResponse(404)])
    client.get_artifact_metadata("my group", "a/b")
    assert session.request_log[0]["url"] == f"{BASE}/groups/my%20group/artifacts/a%2Fb"


def test_bearer_token_is_attached_to_every_call():
    provider = _FixedToken()
    client, session = _client([_DummyResponse(404), _DummyResponse(404)], token_provider=provider)
    client.get_artifact_metadata("g", "a")
    client.get_artifact_metadata("g", "b")
    for entry in session.request_log:
        assert entry["headers"]["Authorization"] == "Bearer tok-xyz"
    assert provider.calls == 2


def test_no_authorization_header_without_provider():
    client, session = _client([_DummyResponse(404)])
    client.get_artifact_metadata("g", "a")
    assert "Authorization" not in session.request_log[0]["headers"]


def test_latest_version_uses_numeric_maximum():
    payload = {"versions": [{"version": "9"}, {"version": "10"}, {"version": "1"}], "count": 3}
    client, session = _client([_DummyResponse(200, payload)])
    latest = client.get_latest_version("g", "a")
    assert latest.version == "10"
    assert latest.group_id == "g"
    assert session.request_log[0]["params"] == {"limit": 1000}


def test_latest_version_of_missing_artifact():
    client, _ = _client([_DummyResponse(404)])
    with pytest.raises(ArtifactNotFound):
        client.get_latest_version("g", "missing")


def test_latest_version_with_empty_list():
    client, _ = _client([_DummyResponse(200, {"versions": []})])
    with pytest.raises(ArtifactNotFound):
        client.get_latest_version("g", "a")


def test_content_for_latest_resolves_version_first():
    client, session = _client(
        [
            _DummyResponse(200, [{"version": "1"}, {"version": "2"}]),
            _DummyResponse(200, raw='{"type": "string"}'),
        ]
    )
    assert client.get_version_content("g", "a") == '{"type": "string"}'
    assert session.request_log[1]["url"] == f"{BASE}/groups/g/artifacts/a/versions/2/content"
    assert session.request_log[1]["headers"]["Accept"] == "*/*"


def test_content_for_missing_version():
    client, _ = _client([_DummyResponse(404)])
    with pytest.raises(VersionNotFound):
        client.get_version_content("g", "a", "7")


def test_create_artifact_payload():
    ref = ContentReference("g", "Address", "1", "com.example.Address")
    client, session = _client(
        [
            _DummyResponse(
                200,
                {
                    "artifact": {"groupId": "g", "artifactId": "Customer", "artifactType": "AVRO"},
                    "version": {"version": "1", "globalId": 42},
                },
            )
        ]
    )
    resp = client.create_artifact("g", "Customer", SchemaFormat.AVRO, '{"type": "record"}', [ref])
    assert resp.version.version == "1"
    assert resp.version.global_id == 42
    entry = session.request_log[0]
    assert entry["method"] == "POST"
    assert entry["url"] == f"{BASE}/groups/g/artifacts"
    assert entry["headers"]["Content-Type"] == CONTENT_TYPE_JSON
    assert entry["json"] == {
        "artifactId": "Customer",
        "artifactType": "AVRO",
        "firstVersion": {
            "content": {
                "content": '{"type": "record"}',
                "contentType": "application/json",
                "references": [
                    {
                        "groupId": "g",
                        "artifactId": "Address",
                        "version": "1",
                        "name": "com.example.Address",
                    }
                ],
            }
        },
    }


def test_create_artifact_rejects_unparseable_json():
    client, session = _client([])
    with pytest.raises(InvalidSchema):
        client.create_artifact("g", "Broken", SchemaFormat.JSON, "{nope")
    assert session.request_log == []


def test_create_protobuf_artifact_skips_validation():
    client, session = _client([_DummyResponse(200, {"artifact": {}, "version": {"version": "1"}})])
    client.create_artifact("g", "orders", SchemaFormat.PROTOBUF, 'syntax = "proto3";')
    content = session.request_log[0]["json"]["firstVersion"]["content"]
    assert content["contentType"] == CONTENT_TYPE_PROTOBUF


def test_create_version_looks_up_type_when_unknown():
    client, session = _client(
        [
            _DummyResponse(200, {"groupId": "g", "artifactId": "orders", "artifactType": "PROTOBUF"}),
            _DummyResponse(200, {"version": "4"}),
        ]
    )
    meta = client.create_version("g", "orders", 'syntax = "proto3";')
    assert meta.version == "4"
    assert meta.artifact_id == "orders"
    body = session.request_log[1]["json"]
    assert body["content"]["contentType"] == CONTENT_TYPE_PROTOBUF
    assert session.request_log[1]["url"] == f"{BASE}/groups/g/artifacts/orders/versions"


def test_server_error_raises_http_error():
    client, _ = _client([_DummyResponse(500, raw="boom")])
    with pytest.raises(HttpError) as excinfo:
        client.get_artifact_metadata("g", "a")
    assert excinfo.value.status == 500
    assert excinfo.value.body == "boom"


def test_transport_failure_raises_network_error():
    client, _ = _client([requests.ConnectionError("refused")])
    with pytest.raises(NetworkError) as excinfo:
        client.get_artifact_metadata("g", "a")
    assert not excinfo.value.timed_out


def test_reads_are_retried_on_transient_status():
    client, session = _client(
        [_DummyResponse(503), _DummyResponse(404)], retry=RetryConfig(attempts=2, base_sleep=0)
    )
    assert client.get_artifact_metadata("g", "a") is None
    assert len(session.request_log) == 2


class _RotatingToken:
    def __init__(self) -> None:
        self.calls = 0

    def get_valid_token(self) -> str:
        self.calls += 1
        return f"tok-{self.calls}"


def test_each_retry_asks_for_a_fresh_token():
    provider = _RotatingToken()
    client, session = _client(
        [_DummyResponse(503), _DummyResponse(404)],
        token_provider=provider,
        retry=RetryConfig(attempts=2, base_sleep=0),
    )
    assert client.get_artifact_metadata("g", "a") is None
    assert [entry["headers"]["Authorization"] for entry in session.request_log] == [
        "Bearer tok-1",
        "Bearer tok-2",
    ]


def test_mutations_are_not_retried():
    client, session = _client(
        [requests.ConnectionError("reset")], retry=RetryConfig(attempts=3, base_sleep=0)
    )
    with pytest.raises(NetworkError):
        client.create_version("g", "a", "{}", content_type=CONTENT_TYPE_JSON)
    assert len(session.request_log) == 1


def test_non_json_metadata_body_raises_parse_error():
    client, _ = _client([_DummyResponse(200, raw="<html>")])
    with pytest.raises(ParseError):
        client.get_artifact_metadata("g", "a")


@pytest.mark.parametrize(
    ("test_response", "expected"),
    [
        (_DummyResponse(200, {"compatible": True}), True),
        (_DummyResponse(200, {"compatible": False}), False),
        (_DummyResponse(404), True),
        (_DummyResponse(409, {"message": "incompatible"}), False),
        (_DummyResponse(422, {"message": "incompatible"}), False),
        (_DummyResponse(200, raw="not json"), False),
        (_DummyResponse(200, {"compatible": "yes"}), False),
    ],
)
def test_compatibility_verdicts(test_response, expected):
    client, session = _client([_DummyResponse(204), test_response])
    assert client.check_compatibility("g", "a", "{}", CompatibilityLevel.FULL) is expected
    rule, test = session.request_log
    assert rule["method"] == "PUT"
    assert rule["json"] == {"config": "FULL"}
    assert rule["url"].endswith("/groups/g/artifacts/a/rules/COMPATIBILITY")
    assert test["method"] == "POST"
    assert test["url"].endswith("/rules/COMPATIBILITY/test")
    assert test["data"] == b"{}"


def test_compatibility_rule_failure_is_not_fatal():
    client, _ = _client([_DummyResponse(500), _DummyResponse(200, {"compatible": True})])
    assert client.check_compatibility("g", "a", "{}", CompatibilityLevel.BACKWARD) is True


def test_compatibility_server_error_propagates():
    client, _ = _client([_DummyResponse(204), _DummyResponse(500, raw="down")])
    with pytest.raises(HttpError):
        client.check_compatibility("g", "a", "{}", CompatibilityLevel.BACKWARD)


def test_search_artifacts():
    payload = {"artifacts": [{"artifactId": "A", "artifactType": "JSON"}, "junk"]}
    client, _ = _client([_DummyResponse(200, payload)])
    found = client.search_artifacts("g")
    assert [(a.group_id, a.artifact_id) for a in found] == [("g", "A")]


def test_search_artifacts_missing_group():
    client, _ = _client([_DummyResponse(404)])
    assert client.search_artifacts("nope") == []
