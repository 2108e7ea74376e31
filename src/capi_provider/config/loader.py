"""Helpers for reading provider settings from YAML, the environment and overrides."""

from __future__ import annotations

import json
import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, MutableMapping, Optional

import yaml

from .schema import ProviderSettings

# Environment variable -> dotted settings key
ENV_VARS: Dict[str, str] = {
    "CLUSTER_API_KUBECONFIG": "cluster_api.kubeconfig",
    "CLUSTER_API_URL": "cluster_api.url",
    "CLUSTER_API_TOKEN": "cluster_api.token",
    "CLUSTER_API_CERTIFICATE_AUTHORITY_DATA": "cluster_api.certificate_authority_data",
    "CLUSTER_API_SKIP_TLS_VERIFY": "cluster_api.skip_tls_verify",
    "CAPI_PROVIDER_LOG_LEVEL": "logging.level",
}

_TRUE = {"1", "true", "yes", "on"}


def _merge_dict(base: MutableMapping[str, Any], updates: Mapping[str, Any]) -> MutableMapping[str, Any]:
    for key, value in updates.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), Mapping):
            base[key] = _merge_dict(deepcopy(base[key]), value)
        else:
            base[key] = deepcopy(value)
    return base


def _nest(key: str, value: Any) -> Dict[str, Any]:
    nested_keys = key.split(".")
    if not all(nested_keys):
        raise ValueError(f"Invalid settings key '{key}'")
    current: Dict[str, Any] = {}
    cursor = current
    for nested_key in nested_keys[:-1]:
        cursor[nested_key] = {}
        cursor = cursor[nested_key]
    cursor[nested_keys[-1]] = value
    return current


def _parse_override(override: str) -> Dict[str, Any]:
    if "=" not in override:
        raise ValueError(f"Override '{override}' must be in key=value format")
    key, raw_value = override.split("=", 1)
    # Try to interpret JSON so we can support numbers, lists, bools
    try:
        value = json.loads(raw_value)
    except json.JSONDecodeError:
        value = raw_value
    return _nest(key.strip(), value)


def _from_environ(environ: Mapping[str, str]) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    for name, key in ENV_VARS.items():
        raw = environ.get(name)
        if raw is None or raw == "":
            continue
        value: Any = raw
        if key.endswith("skip_tls_verify"):
            value = raw.strip().lower() in _TRUE
        payload = dict(_merge_dict(payload, _nest(key, value)))
    return payload


def load_settings(
    path: Optional[str | Path] = None,
    overrides: Optional[Iterable[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ProviderSettings:
    """Resolve settings once: file, then environment, then ``key=value`` overrides."""
    payload: Dict[str, Any] = {}
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with path.open("r", encoding="utf-8") as handle:
            payload = deepcopy(yaml.safe_load(handle) or {})

    payload = dict(_merge_dict(payload, _from_environ(os.environ if environ is None else environ)))

    if overrides:
        for override in overrides:
            payload = dict(_merge_dict(payload, _parse_override(override)))

    return ProviderSettings.model_validate(payload)


def dump_settings(settings: ProviderSettings) -> str:
    return yaml.safe_dump(settings.redacted(), sort_keys=False)
