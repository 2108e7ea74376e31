import json

import pytest
from typer.testing import CliRunner

from capi_provider.apis.objects import CONDITION_READY, CapacityClass
from capi_provider.cli import main as cli_main
from capi_provider.cli.main import app

runner = CliRunner()


@pytest.fixture
def cli_provider(monkeypatch, provider):
    monkeypatch.setattr(cli_main, "build_cloud_provider", lambda settings: provider)
    monkeypatch.setattr(cli_main, "configure_logging", lambda *args, **kwargs: None)
    return provider


def test_settings_prints_redacted_yaml(monkeypatch):
    monkeypatch.setattr(cli_main, "configure_logging", lambda *args, **kwargs: None)
    monkeypatch.setenv("CLUSTER_API_URL", "https://capi.example")
    monkeypatch.setenv("CLUSTER_API_TOKEN", "secret")

    result = runner.invoke(app, ["settings", "--set", "provisioning.poll_timeout_seconds=30"])

    assert result.exit_code == 0
    assert "secret" not in result.output
    assert "poll_timeout_seconds: 30" in result.output


def test_settings_with_missing_file(monkeypatch, tmp_path):
    monkeypatch.setattr(cli_main, "configure_logging", lambda *args, **kwargs: None)
    result = runner.invoke(app, ["settings", "--config", str(tmp_path / "absent.yaml")])
    assert result.exit_code == 1
    assert "error:" in result.output


def test_instance_types_command(cli_provider, factory):
    factory.node_class()
    factory.group("md-1")

    result = runner.invoke(app, ["instance-types", "default"])

    assert result.exit_code == 0
    listed = json.loads(result.output)
    assert [it["name"] for it in listed] == ["md-1"]
    assert listed[0]["capacity"] == {"cpu": "4", "memory": "16777220Ki"}


def test_instance_types_for_unknown_class(cli_provider):
    result = runner.invoke(app, ["instance-types", "absent"])
    assert result.exit_code == 1
    assert "error:" in result.output


def test_claims_and_get_commands(cli_provider, factory):
    factory.group("md-1")
    factory.unit("m-1", group="md-1", provider_id="clusterapi://m-1", member=True)

    listed = runner.invoke(app, ["claims"])
    assert listed.exit_code == 0
    assert [c["providerID"] for c in json.loads(listed.output)] == ["clusterapi://m-1"]

    shown = runner.invoke(app, ["get", "clusterapi://m-1"])
    assert shown.exit_code == 0
    assert json.loads(shown.output)["machine"] == "default/m-1"

    missing = runner.invoke(app, ["get", "clusterapi://absent"])
    assert missing.exit_code == 1


def test_reconcile_node_classes_marks_ready(cli_provider, factory, store):
    factory.node_class("default")
    factory.node_class("gpu")

    result = runner.invoke(app, ["reconcile-node-classes"])

    assert result.exit_code == 0
    assert json.loads(result.output) == {"default": {"requeue": False}, "gpu": {"requeue": False}}
    for name in ("default", "gpu"):
        assert store.get(CapacityClass, name).get_condition(CONDITION_READY).status == "True"
