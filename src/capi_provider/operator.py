"""Wire settings, stores and providers into a ready cloud provider."""

from __future__ import annotations

import tempfile
from typing import Optional

from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException

from capi_provider.cloudprovider.provider import CloudProvider
from capi_provider.config.schema import ClusterAPIConnection, ProviderSettings
from capi_provider.core.logging import get_logger
from capi_provider.providers.groups import GroupProvider
from capi_provider.providers.units import UnitProvider
from capi_provider.store.base import ObjectStore
from capi_provider.store.kube import KubernetesObjectStore

logger = get_logger(__name__)


def _write_ca_bundle(data: str) -> str:
    handle = tempfile.NamedTemporaryFile("w", suffix=".crt", prefix="capi-ca-", delete=False)
    with handle:
        handle.write(data)
    return handle.name


def build_workload_api_client() -> client.ApiClient:
    """Client for the cluster this provider runs in: in-cluster first, then the default kubeconfig."""
    try:
        config.load_incluster_config()
    except ConfigException:
        config.load_kube_config()
    return client.ApiClient()


def build_management_api_client(connection: ClusterAPIConnection) -> Optional[client.ApiClient]:
    """Client for the Cluster API management cluster.

    Returns ``None`` when neither a kubeconfig nor a URL is configured, in
    which case the workload cluster client is reused.
    """
    if connection.uses_workload_cluster():
        return None

    if connection.kubeconfig:
        logger.info("Using Cluster API kubeconfig", extra={"kubeconfig": connection.kubeconfig})
        return config.new_client_from_config(config_file=connection.kubeconfig)

    configuration = client.Configuration()
    configuration.host = connection.url
    if connection.token:
        configuration.api_key = {"authorization": connection.token}
        configuration.api_key_prefix = {"authorization": "Bearer"}
    if connection.certificate_authority_data:
        configuration.ssl_ca_cert = _write_ca_bundle(connection.certificate_authority_data)
    configuration.verify_ssl = not connection.skip_tls_verify
    logger.info("Using Cluster API URL", extra={"url": connection.url, "verify_ssl": configuration.verify_ssl})
    return client.ApiClient(configuration)


def build_cloud_provider(
    settings: ProviderSettings,
    workload_store: Optional[ObjectStore] = None,
    management_store: Optional[ObjectStore] = None,
) -> CloudProvider:
    """Build a provider from resolved settings.

    Settings are read here once; the provider never looks at them again.
    """
    if workload_store is None:
        workload_store = KubernetesObjectStore(build_workload_api_client())
    if management_store is None:
        api_client = build_management_api_client(settings.cluster_api)
        management_store = workload_store if api_client is None else KubernetesObjectStore(api_client)

    return CloudProvider(
        store=workload_store,
        groups=GroupProvider(management_store),
        units=UnitProvider(management_store),
        label_policy=settings.labels.label_policy(),
        poll_policy=settings.provisioning.poll_policy(),
    )
