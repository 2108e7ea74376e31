"""
Configuration tests.
"""
import pytest
import yaml
from pydantic import ValidationError

from capi_provider.config import load_settings
from capi_provider.config.loader import dump_settings
from capi_provider.config.schema import ClusterAPIConnection, ProvisioningConfig


def test_defaults_without_any_source():
    settings = load_settings(environ={})
    assert settings.cluster_api.uses_workload_cluster()
    policy = settings.provisioning.poll_policy()
    assert policy.interval == 1.0
    assert policy.timeout == 60.0
    assert settings.labels.label_policy().allow_undefined() is None


def test_file_then_environment_then_overrides(tmp_path):
    config_path = tmp_path / "provider.yaml"
    config_path.write_text(
        yaml.safe_dump(
            {
                "cluster_api": {"url": "https://file.example:6443"},
                "provisioning": {"poll_timeout_seconds": 30},
                "logging": {"level": "DEBUG"},
            }
        )
    )
    settings = load_settings(
        config_path,
        overrides=["provisioning.poll_interval_seconds=0.5", "labels.strict_undefined_labels=true"],
        environ={"CLUSTER_API_URL": "https://env.example:6443", "CLUSTER_API_TOKEN": "secret"},
    )
    assert settings.cluster_api.url == "https://env.example:6443"
    assert settings.cluster_api.token == "secret"
    assert settings.provisioning.poll_timeout_seconds == 30
    assert settings.provisioning.poll_interval_seconds == 0.5
    assert settings.logging.level == "DEBUG"
    assert settings.labels.label_policy().allow_undefined() is not None


def test_skip_tls_verify_from_environment():
    settings = load_settings(
        environ={"CLUSTER_API_URL": "https://capi.example", "CLUSTER_API_SKIP_TLS_VERIFY": "True"}
    )
    assert settings.cluster_api.skip_tls_verify is True
    assert not settings.cluster_api.uses_workload_cluster()


def test_skip_tls_verify_requires_url():
    with pytest.raises(ValidationError):
        ClusterAPIConnection(skip_tls_verify=True)


def test_poll_interval_cannot_exceed_timeout():
    with pytest.raises(ValidationError):
        ProvisioningConfig(poll_interval_seconds=10, poll_timeout_seconds=5)
    with pytest.raises(ValidationError):
        ProvisioningConfig(poll_timeout_seconds=0)


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_settings(tmp_path / "absent.yaml", environ={})


@pytest.mark.parametrize("override", ["no-equals", ".bad=1", "a..b=1"])
def test_malformed_overrides(override):
    with pytest.raises(ValueError):
        load_settings(overrides=[override], environ={})


def test_label_policy_extension_from_settings():
    settings = load_settings(
        overrides=['labels.well_known_labels=["example.com/team"]', 'labels.restricted_label_domains=["example.com"]'],
        environ={},
    )
    policy = settings.labels.label_policy()
    assert "example.com/team" in policy.well_known_labels
    assert policy.is_restricted("example.com/team")


def test_dump_redacts_token():
    settings = load_settings(environ={"CLUSTER_API_URL": "https://capi.example", "CLUSTER_API_TOKEN": "secret"})
    dumped = yaml.safe_load(dump_settings(settings))
    assert dumped["cluster_api"]["token"] == "***"
    assert settings.cluster_api.token == "secret"
