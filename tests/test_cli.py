from __future__ import annotations

import json
from pathlib import Path

import jsonschema
import pytest
from registry_fakes import FakeRegistry

from schemasync import cli
from schemasync.core import SchemaSync
from schemasync.errors import AuthenticationError, ConfigurationError, HttpError
from schemasync.schemas import get_schemas

ADDRESS = json.dumps(
    {
        "type": "record",
        "name": "Address",
        "namespace": "com.example",
        "fields": [{"name": "street", "type": "string"}],
    }
)
CUSTOMER = json.dumps(
    {
        "type": "record",
        "name": "Customer",
        "namespace": "com.example",
        "fields": [{"name": "address", "type": "com.example.Address"}],
    }
)


def _project(
    tmp_path: Path,
    schemas: dict[str, str],
    registry_url: str = "https://registry.example.com/apis/registry/v3",
) -> Path:
    schema_dir = tmp_path / "schemas"
    schema_dir.mkdir()
    for name, content in schemas.items():
        (schema_dir / name).write_text(content, encoding="utf-8")
    config = tmp_path / "schemasync.config.yaml"
    config.write_text(
        f"""version: 1
registry:
  url: {registry_url}
  group_id: com.example
schemas:
  paths: [schemas]
pull:
  output_dir: pulled
  dependencies:
    - group_id: com.example
      artifact_id: Customer
environment:
  load_dotenv: false
""",
        encoding="utf-8",
    )
    return config


@pytest.fixture
def registry(monkeypatch) -> FakeRegistry:
    fake = FakeRegistry()
    monkeypatch.setattr(cli, "SchemaSync", lambda cfg: SchemaSync(cfg, client=fake))
    return fake


def test_schema_command_prints_config_schema(capsys):
    assert cli.main(["schema", "--name", "config"]) == 0
    printed = json.loads(capsys.readouterr().out)
    assert printed["title"] == "SchemaSyncConfig"


def test_schema_command_prints_all(capsys):
    assert cli.main(["schema"]) == 0
    assert set(json.loads(capsys.readouterr().out)) == set(get_schemas())


def test_discover_lists_schema_files(tmp_path, capsys):
    config = _project(tmp_path, {"Address.avsc": ADDRESS, "Customer.avsc": CUSTOMER})
    assert cli.main(["--quiet", "discover", "--config", str(config)]) == 0
    lines = [line for line in capsys.readouterr().out.splitlines() if "\t" in line]
    assert [line.split("\t")[:2] for line in lines] == [["Address", "AVRO"], ["Customer", "AVRO"]]


def test_order_prints_dependencies_first(tmp_path, capsys):
    config = _project(tmp_path, {"Customer.avsc": CUSTOMER, "Address.avsc": ADDRESS})
    assert cli.main(["--quiet", "order", "--config", str(config)]) == 0
    out = capsys.readouterr().out
    assert "1. Address" in out
    assert "2. Customer  (after Address)" in out


def test_order_reports_cycle(tmp_path, capsys):
    config = _project(
        tmp_path,
        {
            "A.json": json.dumps({"$ref": "apicurio://com.example/B"}),
            "B.json": json.dumps({"$ref": "apicurio://com.example/A"}),
        },
    )
    assert cli.main(["--quiet", "order", "--config", str(config)]) == 1
    err = capsys.readouterr().err
    assert "[dependency.cycle]" in err
    assert "A, B" in err


def test_validate(tmp_path, capsys):
    config = _project(tmp_path, {"Address.avsc": ADDRESS})
    assert cli.main(["validate", "--config", str(config)]) == 0
    assert "Configuration valid; 1 schema(s)" in capsys.readouterr().out


def test_validate_rejects_bad_url(tmp_path, capsys):
    config = _project(tmp_path, {}, registry_url="ftp://registry")
    assert cli.main(["--quiet", "validate", "--config", str(config)]) == 1
    assert "[config]" in capsys.readouterr().err


def test_missing_config_file(tmp_path, capsys):
    assert cli.main(["discover", "--config", str(tmp_path / "nope.yaml")]) == 1
    assert "Configuration file not found" in capsys.readouterr().err


def test_show_config(tmp_path, capsys):
    config = _project(tmp_path, {})
    assert cli.main(["--quiet", "show-config", "--config", str(config)]) == 0
    shown = json.loads(capsys.readouterr().out)
    assert shown["group_id"] == "com.example"
    assert shown["auth"] == "none"
    assert shown["pull_dependencies"] == ["com.example:Customer:latest"]


def test_show_config_flags_invalid_settings(tmp_path, capsys):
    config = _project(tmp_path, {}, registry_url="ftp://registry")
    assert cli.main(["--quiet", "show-config", "--config", str(config)]) == 1
    assert "http(s)" in capsys.readouterr().out


def test_publish_writes_summary(tmp_path, capsys, registry):
    config = _project(tmp_path, {"Customer.avsc": CUSTOMER, "Address.avsc": ADDRESS})
    summary_path = tmp_path / "out" / "summary.json"

    code = cli.main(
        ["--quiet", "publish", "--config", str(config), "--summary-json", str(summary_path)]
    )

    assert code == 0
    assert registry.mutations == [
        ("create_artifact", "Address"),
        ("create_artifact", "Customer"),
    ]
    document = json.loads(summary_path.read_text(encoding="utf-8"))
    jsonschema.validate(document, get_schemas()["summary"])
    assert document["order"] == ["Address", "Customer"]
    assert document["totals"]["created"] == 2
    assert "last_error" not in document
    assert "[publish] totals" in capsys.readouterr().out


def test_publish_exits_nonzero_on_failure(tmp_path, capsys, registry):
    registry.errors[("create_artifact", "Customer")] = HttpError(500, "boom")
    config = _project(tmp_path, {"Customer.avsc": CUSTOMER, "Address.avsc": ADDRESS})

    assert cli.main(["publish", "--config", str(config)]) == 1

    out = capsys.readouterr()
    assert "Customer: failed" in out.out
    assert "1 schema(s) failed to publish" in out.err


def test_publish_abort_still_writes_summary(tmp_path, capsys, registry):
    registry.errors[("get_artifact_metadata", "Address")] = AuthenticationError("token rejected")
    config = _project(tmp_path, {"Address.avsc": ADDRESS})
    summary_path = tmp_path / "summary.json"

    code = cli.main(
        ["--quiet", "publish", "--config", str(config), "--summary-json", str(summary_path)]
    )

    assert code == 1
    document = json.loads(summary_path.read_text(encoding="utf-8"))
    jsonschema.validate(document, get_schemas()["summary"])
    assert document["last_error"]["category"] == "auth"
    assert "[auth]" in capsys.readouterr().err


def test_plan_writes_json(tmp_path, capsys, registry):
    registry.seed("com.example", "Address", ADDRESS, "AVRO")
    config = _project(tmp_path, {"Customer.avsc": CUSTOMER, "Address.avsc": ADDRESS})
    plan_path = tmp_path / "plan.json"

    assert cli.main(["--quiet", "plan", "--config", str(config), "--plan-json", str(plan_path)]) == 0

    document = json.loads(plan_path.read_text(encoding="utf-8"))
    jsonschema.validate(document, get_schemas()["plan"])
    actions = {entry["artifact_id"]: entry["action"] for entry in document["plan"]}
    assert actions == {"Address": "unchanged", "Customer": "create"}
    assert registry.mutations == []


def test_pull_uses_configured_dependencies(tmp_path, capsys, registry):
    registry.seed("com.example", "Customer", CUSTOMER, "AVRO")
    registry.seed("com.example", "Address", ADDRESS, "AVRO")
    config = _project(tmp_path, {})

    assert cli.main(["--quiet", "pull", "--config", str(config), "--transitive"]) == 0

    pulled = tmp_path / "pulled" / "com" / "example"
    assert sorted(p.name for p in pulled.iterdir()) == ["Address.avsc", "Customer.avsc"]


def test_deps_lists_transitive_references(tmp_path, capsys, registry):
    registry.seed("com.example", "Customer", CUSTOMER, "AVRO")
    registry.seed("com.example", "Address", ADDRESS, "AVRO")
    config = _project(tmp_path, {})

    assert cli.main(["--quiet", "deps", "--config", str(config), "com.example:Customer"]) == 0
    assert "com.example:Address:latest" in capsys.readouterr().out.splitlines()


def test_parse_coordinate():
    assert cli.parse_coordinate("g:a").coordinate == "g:a:latest"
    assert cli.parse_coordinate("g:a:4").version == "4"
    for bad in ("justone", "g::1", "a:b:c:d"):
        with pytest.raises(ConfigurationError):
            cli.parse_coordinate(bad)


def _tab_lines(text: str) -> list[str]:
    return [line for line in text.splitlines() if "\t" in line]


def test_list_prints_group_artifacts(tmp_path, capsys, registry):
    registry.seed("com.example", "Customer", CUSTOMER, "AVRO")
    registry.seed("com.example", "Address", ADDRESS, "AVRO")
    registry.seed("com.other", "Invoice", "{}", "JSON")
    config = _project(tmp_path, {})

    assert cli.main(["--quiet", "list", "--config", str(config)]) == 0
    assert _tab_lines(capsys.readouterr().out) == ["Address\tAVRO", "Customer\tAVRO"]

    assert cli.main(["--quiet", "list", "--config", str(config), "--group", "com.other"]) == 0
    assert _tab_lines(capsys.readouterr().out) == ["Invoice\tJSON"]
    assert ("search_artifacts", "com.other") in registry.calls
