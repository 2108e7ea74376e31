from pathlib import Path

from kubernetes import client

from capi_provider import operator
from capi_provider.cloudprovider.provider import CloudProvider
from capi_provider.config import load_settings
from capi_provider.config.schema import ClusterAPIConnection
from capi_provider.store.memory import InMemoryObjectStore


def test_management_client_defaults_to_workload_cluster():
    assert operator.build_management_api_client(ClusterAPIConnection()) is None


def test_management_client_from_url_and_token():
    api_client = operator.build_management_api_client(
        ClusterAPIConnection(url="https://capi.example:6443", token="secret", certificate_authority_data="PEM DATA")
    )
    configuration = api_client.configuration
    assert configuration.host == "https://capi.example:6443"
    assert configuration.api_key == {"authorization": "secret"}
    assert configuration.api_key_prefix == {"authorization": "Bearer"}
    assert configuration.verify_ssl is True
    assert Path(configuration.ssl_ca_cert).read_text() == "PEM DATA"
    Path(configuration.ssl_ca_cert).unlink()


def test_management_client_skipping_tls_verification():
    api_client = operator.build_management_api_client(
        ClusterAPIConnection(url="https://capi.example:6443", skip_tls_verify=True)
    )
    assert api_client.configuration.verify_ssl is False


def test_management_client_prefers_kubeconfig(monkeypatch):
    sentinel = object()
    calls = []

    def fake_new_client(config_file=None):
        calls.append(config_file)
        return sentinel

    monkeypatch.setattr(operator.config, "new_client_from_config", fake_new_client)
    connection = ClusterAPIConnection(kubeconfig="/etc/capi/kubeconfig", url="https://ignored")
    assert operator.build_management_api_client(connection) is sentinel
    assert calls == ["/etc/capi/kubeconfig"]


def test_build_cloud_provider_applies_settings():
    workload = InMemoryObjectStore()
    management = InMemoryObjectStore()
    settings = load_settings(
        overrides=[
            "provisioning.poll_interval_seconds=2",
            "provisioning.poll_timeout_seconds=10",
            "labels.strict_undefined_labels=true",
        ],
        environ={},
    )

    provider = operator.build_cloud_provider(settings, workload_store=workload, management_store=management)

    assert isinstance(provider, CloudProvider)
    assert provider.store is workload
    assert provider.groups.store is management
    assert provider.units.store is management
    assert provider.poll_policy.interval == 2
    assert provider.poll_policy.timeout == 10
    assert provider.label_policy.strict_undefined_labels is True


def test_build_cloud_provider_reuses_workload_store_without_connection():
    workload = InMemoryObjectStore()
    provider = operator.build_cloud_provider(load_settings(environ={}), workload_store=workload)
    assert provider.groups.store is workload


def test_workload_client_falls_back_to_kubeconfig(monkeypatch):
    loaded = []

    def no_cluster():
        raise operator.ConfigException("not in cluster")

    monkeypatch.setattr(operator.config, "load_incluster_config", no_cluster)
    monkeypatch.setattr(operator.config, "load_kube_config", lambda: loaded.append(True))
    assert isinstance(operator.build_workload_api_client(), client.ApiClient)
    assert loaded == [True]
