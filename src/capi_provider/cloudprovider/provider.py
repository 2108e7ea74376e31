"""Cloud provider that turns node claims into Cluster API machines.

Cluster API only scales MachineDeployments, so a create reserves one replica
on a compatible group, waits for the new machine to appear and binds it to
the claim. A delete marks the machine for removal and then gives the replica
back. Create and delete are serialized on one lock per provider; reads are
not locked.
"""

from __future__ import annotations

import threading
from typing import List, Optional, Tuple, Type

from capi_provider.apis import wellknown
from capi_provider.apis.objects import CapacityClass, NodeClaim, NodePool, ObjectMeta, ScalableGroup, Unit
from capi_provider.apis.quantity import RESOURCE_CPU, RESOURCE_MEMORY
from capi_provider.apis.selectors import LabelSelector, exists
from capi_provider.core.exceptions import (
    CompensationError,
    InsufficientCapacityError,
    InvalidInputError,
    NodeClaimNotFoundError,
    NotFoundError,
    ProviderError,
    ProvisioningError,
    UnclaimedUnitNotFoundError,
    wrap_error,
)
from capi_provider.core.logging import claim_context, get_logger
from capi_provider.core.polling import PollCancelledError, PollPolicy
from capi_provider.providers.groups import GroupProvider
from capi_provider.providers.units import UnitProvider
from capi_provider.scheduling.requirements import Requirements
from capi_provider.scheduling.resources import fits
from capi_provider.store.base import ObjectStore

from .instancetype import InstanceType
from .labels import LabelPolicy
from .provisioning import ProvisioningAttempt
from .translator import capacity_from_annotations, group_to_instance_type, node_labels_from_group

logger = get_logger(__name__)


def parse_machine_annotation(value: str) -> Tuple[str, str]:
    """Split a ``namespace/name`` bind annotation."""
    parts = value.split("/")
    if len(parts) != 2:
        raise InvalidInputError(f"invalid machine annotation {value!r}, expected 'namespace/name'")
    namespace, name = parts[0].strip(), parts[1].strip()
    if not namespace or not name:
        raise InvalidInputError(f"invalid machine annotation {value!r}, namespace and name cannot be empty")
    return namespace, name


class CloudProvider:
    """Provision and release node claims against Cluster API scalable groups.

    ``store`` is the cluster holding claims and capacity classes; groups and
    units may live in a separate management cluster behind their providers.
    """

    def __init__(
        self,
        store: ObjectStore,
        groups: GroupProvider,
        units: UnitProvider,
        label_policy: Optional[LabelPolicy] = None,
        poll_policy: Optional[PollPolicy] = None,
    ) -> None:
        self.store = store
        self.groups = groups
        self.units = units
        self.label_policy = label_policy or LabelPolicy.default()
        self.poll_policy = poll_policy or PollPolicy()
        self._access_lock = threading.Lock()

    def name(self) -> str:
        return wellknown.PROVIDER_NAME

    # -- mutating protocol -------------------------------------------------

    def create(self, claim: NodeClaim, cancel: Optional[threading.Event] = None) -> NodeClaim:
        """Reserve a unit of capacity for ``claim`` and return the populated claim.

        A claim that already carries the machine annotation is resumed instead
        of reserving more capacity.
        """
        if claim is None:
            raise InvalidInputError("cannot satisfy create, NodeClaim is nil")

        with self._access_lock, claim_context(claim.name):
            group, unit = self._provision(claim, cancel)
            if not unit.provider_id:
                raise ProvisioningError(
                    f"cannot satisfy create, waiting for Machine {unit.name!r} to have ProviderID",
                    metadata={"machine": f"{unit.namespace}/{unit.name}"},
                )
            created = self._claim_from_group(claim, group)
            created.status.provider_id = unit.provider_id
            logger.info(
                "Populated NodeClaim from Machine",
                extra={"machine": f"{unit.namespace}/{unit.name}", "provider_id": unit.provider_id},
            )
            return created

    def delete(self, claim: NodeClaim) -> None:
        if claim is None:
            raise InvalidInputError("cannot satisfy delete, NodeClaim is nil")

        with self._access_lock, claim_context(claim.name):
            unit = self._unit_for_claim(claim)

            if self.units.is_deleting(unit):
                logger.info("Machine is already deleting", extra={"machine": f"{unit.namespace}/{unit.name}"})
                return

            # A marked machine was already released by an earlier delete or by an operator
            if wellknown.DELETE_MACHINE_ANNOTATION in unit.metadata.annotations:
                logger.info(
                    "Machine is already annotated for deletion", extra={"machine": f"{unit.namespace}/{unit.name}"}
                )
                return

            try:
                group = self._group_for_unit(unit)
            except ProviderError as exc:
                raise wrap_error(
                    exc,
                    f"unable to delete NodeClaim {claim.name!r}, cannot find an owner MachineDeployment "
                    f"for Machine {unit.name!r}",
                ) from exc

            if group.replicas is None:
                raise ProvisioningError(
                    f"unable to delete NodeClaim {claim.name!r}, MachineDeployment {group.name!r} has nil replicas"
                )
            if group.replicas == 0:
                raise ProvisioningError(
                    f"unable to delete NodeClaim {claim.name!r}, MachineDeployment {group.name!r} "
                    "is already at zero replicas"
                )

            # Mark first so a concurrent scale down removes this machine and no other
            try:
                annotated = self.units.add_delete_annotation(unit)
            except ProviderError as exc:
                raise wrap_error(
                    exc, f"unable to delete NodeClaim {claim.name!r}, cannot annotate Machine {unit.name!r} for deletion"
                ) from exc
            logger.info("Annotated Machine for deletion", extra={"machine": f"{unit.namespace}/{unit.name}"})

            original = group.replicas
            group.spec.replicas = original - 1
            try:
                self.groups.update(group)
            except ProviderError as exc:
                primary = wrap_error(
                    exc, f"unable to delete NodeClaim {claim.name!r}, cannot update MachineDeployment {group.name!r} replicas"
                )
                if not annotated:
                    raise primary from exc
                try:
                    self.units.remove_delete_annotation(unit)
                except Exception as cleanup:
                    logger.error(
                        "Failed to remove deletion annotation after replica update failure",
                        extra={"machine": f"{unit.namespace}/{unit.name}", "error": str(cleanup)},
                    )
                    raise CompensationError(
                        f"unable to delete NodeClaim {claim.name!r}, Machine {unit.name!r} is annotated for "
                        f"deletion but MachineDeployment {group.name!r} was not scaled down",
                        primary=primary,
                        cleanup=cleanup,
                        metadata={"machine": f"{unit.namespace}/{unit.name}", "group": group.name},
                    ) from exc
                logger.info("Removed deletion annotation after failed scale down", extra={"group": group.name})
                raise primary from exc

            logger.info(
                "Decremented MachineDeployment replicas",
                extra={"group": f"{group.namespace}/{group.name}", "replicas": original - 1},
            )

    # -- read paths --------------------------------------------------------

    def get(self, provider_id: str) -> NodeClaim:
        if not provider_id:
            raise InvalidInputError("no providerID supplied to Get, cannot continue")
        try:
            unit = self.units.get_by_external_id(provider_id)
        except ProviderError as exc:
            raise wrap_error(exc, "error getting Machine") from exc
        if unit is None:
            raise NodeClaimNotFoundError(f"cannot find Machine with provider ID {provider_id!r}")
        try:
            return self._unit_to_claim(unit)
        except ProviderError as exc:
            raise wrap_error(exc, "unable to convert Machine to NodeClaim in CloudProvider.Get") from exc

    def list(self) -> List[NodeClaim]:
        """Claims for every unit that carries the membership label."""
        selector = LabelSelector(match_expressions=[exists(wellknown.NODE_POOL_MEMBER_LABEL)])
        try:
            units = self.units.list(selector)
        except ProviderError as exc:
            raise wrap_error(exc, "listing machines") from exc

        claims = []
        for unit in units:
            try:
                claims.append(self._unit_to_claim(unit))
            except ProviderError as exc:
                raise wrap_error(exc, f"unable to convert Machine {unit.name} to NodeClaim") from exc
        return claims

    def get_instance_types(self, node_pool: NodePool) -> List[InstanceType]:
        if node_pool is None:
            raise InvalidInputError("node pool reference is nil, no way to proceed")
        try:
            capacity_class = self._resolve_capacity_class_from_node_pool(node_pool)
        except ProviderError as exc:
            raise wrap_error(exc, f"unable to resolve NodeClass from NodePool {node_pool.name}") from exc
        try:
            return self.instance_types_for_class(capacity_class)
        except ProviderError as exc:
            raise wrap_error(exc, f"unable to get instance types for NodePool {node_pool.name!r}") from exc

    def instance_types_for_class(self, capacity_class: CapacityClass) -> List[InstanceType]:
        if capacity_class is None:
            raise InvalidInputError("unable to find instance types for nil NodeClass")
        try:
            groups = self.groups.list(capacity_class.spec.scalable_resource_selector)
        except ProviderError as exc:
            raise wrap_error(exc, f"unable to list MachineDeployments for NodeClass {capacity_class.name}") from exc

        instance_types = []
        for group in groups:
            try:
                instance_types.append(group_to_instance_type(group))
            except ProviderError as exc:
                raise wrap_error(exc, f"unable to read capacity of MachineDeployment {group.namespace}/{group.name}") from exc
        return instance_types

    def get_supported_capacity_classes(self) -> List[Type[CapacityClass]]:
        return [CapacityClass]

    def is_drifted(self, claim: NodeClaim) -> str:
        return ""

    def repair_policies(self) -> List[object]:
        return []

    # -- create internals --------------------------------------------------

    def _provision(self, claim: NodeClaim, cancel: Optional[threading.Event]) -> Tuple[ScalableGroup, Unit]:
        bound_to = claim.metadata.annotations.get(wellknown.MACHINE_ANNOTATION)
        if bound_to is None:
            return self._create_unit(claim, cancel)

        namespace, name = parse_machine_annotation(bound_to)
        try:
            unit = self.units.get(name, namespace)
        except ProviderError as exc:
            raise wrap_error(exc, f"failed to get NodeClaim's Machine {name}") from exc
        try:
            group = self._group_for_unit(unit)
        except ProviderError as exc:
            raise wrap_error(exc, f"failed to get NodeClaim's MachineDeployment for Machine {name}") from exc
        logger.info("Resuming NodeClaim already bound to Machine", extra={"machine": bound_to})
        return group, unit

    def _create_unit(self, claim: NodeClaim, cancel: Optional[threading.Event]) -> Tuple[ScalableGroup, Unit]:
        try:
            capacity_class = self._resolve_capacity_class_from_claim(claim)
        except ProviderError as exc:
            raise wrap_error(
                exc, f"cannot satisfy create, unable to resolve NodeClass from NodeClaim {claim.name!r}"
            ) from exc

        try:
            instance_types = self.instance_types_for_class(capacity_class)
        except ProviderError as exc:
            raise wrap_error(
                exc,
                f"cannot satisfy create, unable to get instance types for NodeClass {capacity_class.name!r} "
                f"of NodeClaim {claim.name!r}",
            ) from exc

        compatible = self._filter_compatible(instance_types, claim)
        if not compatible:
            raise InsufficientCapacityError(
                "cannot satisfy create, no compatible instance types found",
                metadata={"node_class": capacity_class.name, "candidates": len(instance_types)},
            )

        # TODO: prefer the cheapest or smallest compatible type once offerings carry prices
        compatible.sort(key=lambda it: (it.name.lower(), it.group_namespace, it.group_name))
        selected = compatible[0]
        logger.info(
            "Selected instance type",
            extra={"instance_type": selected.name, "group": f"{selected.group_namespace}/{selected.group_name}"},
        )

        try:
            group = self.groups.get(selected.group_name, selected.group_namespace)
        except ProviderError as exc:
            raise wrap_error(
                exc,
                f"cannot satisfy create, unable to find MachineDeployment {selected.group_name!r} "
                f"for InstanceType {selected.name!r}",
            ) from exc
        if group.replicas is None:
            raise ProvisioningError(
                f"cannot satisfy create, MachineDeployment {group.name!r} has nil replicas and cannot be scaled"
            )

        original = group.replicas
        group.spec.replicas = original + 1
        try:
            self.groups.update(group)
        except ProviderError as exc:
            raise wrap_error(
                exc, f"cannot satisfy create, unable to update MachineDeployment {group.name!r} replicas"
            ) from exc
        logger.info(
            "Incremented MachineDeployment replicas",
            extra={"group": f"{group.namespace}/{group.name}", "replicas": original + 1},
        )

        attempt = ProvisioningAttempt(
            claim_name=claim.name,
            group_name=group.name,
            group_namespace=group.namespace,
            original_replicas=original,
        )

        try:
            unit = attempt.await_unit(self.units, self.poll_policy, cancel)
        except Exception as exc:
            if isinstance(exc, PollCancelledError):
                primary: ProviderError = ProvisioningError(
                    f"cannot satisfy create, cancelled while waiting for an unclaimed Machine "
                    f"in MachineDeployment {group.name!r}"
                )
            else:
                primary = UnclaimedUnitNotFoundError(
                    f"cannot satisfy create, unable to find an unclaimed Machine for MachineDeployment "
                    f"{group.name!r}: {exc}"
                )
            self._roll_back(attempt, primary, exc)
            raise primary from exc
        logger.info("Discovered unclaimed Machine", extra={"machine": f"{unit.namespace}/{unit.name}"})

        unit.metadata.labels[wellknown.NODE_POOL_MEMBER_LABEL] = ""
        try:
            self.units.update(unit)
        except Exception as exc:
            primary = ProvisioningError(
                f"cannot satisfy create, unable to label Machine {unit.name!r} as a member: {exc}"
            )
            self._roll_back(attempt, primary, exc, unit=unit)
            raise primary from exc
        logger.info("Labelled Machine as a member", extra={"machine": f"{unit.namespace}/{unit.name}"})

        claim.metadata.annotations[wellknown.MACHINE_ANNOTATION] = f"{unit.namespace}/{unit.name}"
        try:
            self.store.update(claim)
        except Exception as exc:
            claim.metadata.annotations.pop(wellknown.MACHINE_ANNOTATION, None)
            primary = ProvisioningError(
                f"cannot satisfy create, unable to update NodeClaim annotations {claim.name!r}: {exc}"
            )
            self._roll_back(attempt, primary, exc, unit=unit)
            raise primary from exc

        attempt.bound()
        logger.info("Bound NodeClaim to Machine", extra={"machine": f"{unit.namespace}/{unit.name}"})
        return group, unit

    def _roll_back(
        self,
        attempt: ProvisioningAttempt,
        primary: ProviderError,
        cause: BaseException,
        unit: Optional[Unit] = None,
    ) -> None:
        """Give back the reserved replica.

        A discovered unit is marked for deletion first so that the scale down
        removes it rather than an unrelated machine.
        """
        primary.__cause__ = cause
        try:
            if unit is not None:
                current = self.units.get(unit.name, unit.namespace)
                self.units.add_delete_annotation(current)
            group = self.groups.get(attempt.group_name, attempt.group_namespace)
            group.spec.replicas = attempt.original_replicas
            self.groups.update(group)
        except Exception as cleanup:
            logger.error(
                "Failed to restore MachineDeployment replicas",
                extra={"group": attempt.group_key, "replicas": attempt.original_replicas, "error": str(cleanup)},
            )
            raise CompensationError(
                f"cannot satisfy create, unable to roll back MachineDeployment {attempt.group_key}",
                primary=primary,
                cleanup=cleanup,
                metadata={"group": attempt.group_key, "original_replicas": attempt.original_replicas},
            ) from primary

        attempt.rolled_back()
        logger.info(
            "Rolled back MachineDeployment replicas",
            extra={"group": attempt.group_key, "replicas": attempt.original_replicas},
        )

    def _filter_compatible(self, instance_types: List[InstanceType], claim: NodeClaim) -> List[InstanceType]:
        requirements = Requirements.from_node_selector(claim.spec.requirements)
        requests = claim.spec.resources.requests
        allow_undefined = self.label_policy.allow_undefined()

        compatible = []
        for instance_type in instance_types:
            reasons = requirements.compatible(instance_type.requirements, allow_undefined)
            if not reasons and not fits(requests, instance_type.allocatable()):
                reasons.append("allocatable resources do not cover the requests")
            if reasons:
                logger.debug(
                    "Skipping incompatible instance type",
                    extra={
                        "instance_type": instance_type.name,
                        "group": f"{instance_type.group_namespace}/{instance_type.group_name}",
                        "reasons": reasons,
                    },
                )
                continue
            compatible.append(instance_type)
        return compatible

    # -- lookups -----------------------------------------------------------

    def _resolve_capacity_class(self, name: str, owner: str) -> CapacityClass:
        try:
            return self.store.get(CapacityClass, name)
        except NotFoundError as exc:
            raise InvalidInputError(f"NodeClass {name} referenced by {owner} does not exist") from exc
        except ProviderError as exc:
            raise wrap_error(exc, f"unable to get NodeClass {name} for {owner}") from exc

    def _resolve_capacity_class_from_claim(self, claim: NodeClaim) -> CapacityClass:
        ref = claim.spec.node_class_ref
        if ref is None:
            raise InvalidInputError(f"NodeClass reference is nil for NodeClaim {claim.name!r}, cannot resolve NodeClass")
        if not ref.name:
            raise InvalidInputError(
                f"NodeClass reference name is empty for NodeClaim {claim.name!r}, cannot resolve NodeClass"
            )
        restricted = sorted(
            r.key
            for r in claim.spec.requirements
            if self.label_policy.is_restricted(r.key) and r.key not in self.label_policy.well_known_labels
        )
        if restricted:
            logger.debug(
                "NodeClaim requires labels in restricted domains", extra={"claim_labels": restricted, "node_class": ref.name}
            )
        return self._resolve_capacity_class(ref.name, f"NodeClaim {claim.name}")

    def _resolve_capacity_class_from_node_pool(self, node_pool: NodePool) -> CapacityClass:
        ref = node_pool.spec.template.spec.node_class_ref
        if ref is None:
            raise InvalidInputError("node class reference is nil, no way to proceed")
        if not ref.name:
            raise InvalidInputError("node class reference name is empty, no way to proceed")
        return self._resolve_capacity_class(ref.name, f"NodePool {node_pool.name}")

    def _unit_for_claim(self, claim: NodeClaim) -> Unit:
        provider_id = claim.status.provider_id
        if provider_id:
            try:
                unit = self.units.get_by_external_id(provider_id)
            except ProviderError as exc:
                raise wrap_error(
                    exc, f"error finding Machine with provider ID {provider_id!r} to Delete NodeClaim {claim.name!r}"
                ) from exc
            if unit is None:
                raise NodeClaimNotFoundError(
                    f"unable to find Machine with provider ID {provider_id!r} to Delete NodeClaim {claim.name!r}"
                )
            return unit

        bound_to = claim.metadata.annotations.get(wellknown.MACHINE_ANNOTATION)
        if bound_to is None:
            raise InvalidInputError(
                f"NodeClaim {claim.name!r} does not have a provider ID or Machine annotations, cannot delete"
            )
        namespace, name = parse_machine_annotation(bound_to)
        try:
            return self.units.get(name, namespace)
        except NotFoundError as exc:
            raise NodeClaimNotFoundError(
                f"unable to find Machine {name!r} in namespace {namespace} to Delete NodeClaim {claim.name!r}"
            ) from exc
        except ProviderError as exc:
            raise wrap_error(
                exc, f"error finding Machine {name!r} in namespace {namespace} to Delete NodeClaim {claim.name!r}"
            ) from exc

    def _group_for_unit(self, unit: Unit) -> ScalableGroup:
        group_name = unit.metadata.labels.get(wellknown.DEPLOYMENT_NAME_LABEL)
        if not group_name:
            raise ProviderError(
                f"unable to find MachineDeployment for Machine {unit.name!r}, has no MachineDeployment label "
                f"{wellknown.DEPLOYMENT_NAME_LABEL!r}",
                code="missing_owner",
            )
        try:
            return self.groups.get(group_name, unit.namespace)
        except ProviderError as exc:
            raise wrap_error(exc, f"unable to get MachineDeployment {group_name} for Machine {unit.name}") from exc

    # -- claim snapshots ---------------------------------------------------

    def _claim_from_group(self, claim: NodeClaim, group: ScalableGroup) -> NodeClaim:
        instance_type = group_to_instance_type(group)
        created = claim.deep_copy()
        created.metadata.labels.update(node_labels_from_group(group))
        created.status.capacity = dict(instance_type.capacity)
        created.status.allocatable = instance_type.allocatable()
        return created

    def _unit_to_claim(self, unit: Unit) -> NodeClaim:
        try:
            group = self._group_for_unit(unit)
        except ProviderError as exc:
            raise wrap_error(
                exc, f"unable to convert Machine {unit.name!r} to a NodeClaim, cannot find MachineDeployment"
            ) from exc

        capacity = capacity_from_annotations(group.metadata.annotations)
        for resource in (RESOURCE_CPU, RESOURCE_MEMORY):
            if resource not in capacity:
                raise ProviderError(
                    f"unable to convert Machine {unit.name!r} to a NodeClaim, no {resource} capacity found "
                    f"on MachineDeployment {group.name!r}",
                    code="missing_capacity",
                )

        claim = NodeClaim(
            metadata=ObjectMeta(
                labels=node_labels_from_group(group),
                annotations={wellknown.MACHINE_ANNOTATION: f"{unit.namespace}/{unit.name}"},
            )
        )
        claim.status.provider_id = unit.provider_id or ""
        claim.status.capacity = capacity
        claim.status.allocatable = group_to_instance_type(group).allocatable()
        return claim
