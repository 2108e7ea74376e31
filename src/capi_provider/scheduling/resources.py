"""Resource list arithmetic."""

from __future__ import annotations

from typing import Mapping

from capi_provider.apis.quantity import Quantity


def fits(requests: Mapping[str, Quantity], available: Mapping[str, Quantity]) -> bool:
    """True when every requested resource is covered; absent resources count as zero."""
    for name, amount in requests.items():
        if amount > available.get(name, Quantity.zero()):
            return False
    return True
