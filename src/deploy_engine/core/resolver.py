"""
Lookup-or-create resolution of named resources.

One parametrized resolver serves every resource kind: instance, load
balancer, target group, listener and image repository.
"""
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from .exceptions import ResolutionError
from .models import Resource, ResourceKind, ResourceState
from .provider import Provider, ProviderError

logger = logging.getLogger(__name__)

Validator = Callable[[str, Dict[str, Any], Provider], None]


def _require(name: str, config: Dict[str, Any], *keys: str) -> None:
    missing = [key for key in keys if not config.get(key)]
    if missing:
        raise ResolutionError(
            f"Missing required configuration: {', '.join(missing)}",
            resource_name=name,
        )


def validate_load_balancer(name: str, config: Dict[str, Any], provider: Provider) -> None:
    """Subnets must exist and sit in pairwise distinct availability zones."""
    _require(name, config, "subnets", "security_groups")
    subnets = list(config["subnets"])
    if len(subnets) < 2:
        raise ResolutionError(
            f"A load balancer needs at least two subnets, got {len(subnets)}",
            resource_name=name,
        )
    if len(set(subnets)) != len(subnets):
        raise ResolutionError(f"Duplicate subnets supplied: {subnets}", resource_name=name)

    try:
        zones = provider.describe_subnet_zones(subnets)
    except ProviderError as e:
        raise ResolutionError(
            f"Subnet validation failed: {e.message}",
            resource_name=name,
            last_status=e.code,
        ) from e

    unknown = [s for s in subnets if s not in zones]
    if unknown:
        raise ResolutionError(f"Subnets not found: {unknown}", resource_name=name)

    seen: Dict[str, str] = {}
    for subnet in subnets:
        zone = zones[subnet]
        if zone in seen:
            raise ResolutionError(
                f"Subnets {seen[zone]} and {subnet} are in the same availability zone ({zone}); "
                f"a load balancer requires subnets in different zones",
                resource_name=name,
            )
        seen[zone] = subnet
    logger.info(f"✅ Subnets validated for {name}: {', '.join(f'{s} ({zones[s]})' for s in subnets)}")


def validate_target_group(name: str, config: Dict[str, Any], provider: Provider) -> None:
    _require(name, config, "vpc_id", "port")


def validate_listener(name: str, config: Dict[str, Any], provider: Provider) -> None:
    _require(name, config, "load_balancer_arn", "target_group_arn", "port")


def validate_compute_instance(name: str, config: Dict[str, Any], provider: Provider) -> None:
    _require(name, config, "image_id", "instance_type", "subnet_id", "security_group_ids")


DEFAULT_VALIDATORS: Dict[ResourceKind, Validator] = {
    ResourceKind.LOAD_BALANCER: validate_load_balancer,
    ResourceKind.TARGET_GROUP: validate_target_group,
    ResourceKind.LISTENER: validate_listener,
    ResourceKind.COMPUTE_INSTANCE: validate_compute_instance,
}


class ResourceResolver:
    """Resolve resources by logical name, creating them only when absent."""

    def __init__(self, provider: Provider, validators: Optional[Dict[ResourceKind, Validator]] = None):
        self.provider = provider
        self.validators = dict(DEFAULT_VALIDATORS if validators is None else validators)
        # Identities created by this resolver, guarding against lookup lag
        self._created: Dict[Tuple[ResourceKind, str], str] = {}

    def resolve(self, kind: ResourceKind, name: str, desired_config: Optional[Dict[str, Any]] = None) -> Resource:
        """Look up ``name``; create it from ``desired_config`` when absent.

        Drift between an existing resource and ``desired_config`` is not
        reconciled: an existing resource is reused as found.

        Raises:
            ResolutionError: lookup/create failed or a dependency is invalid
        """
        config = dict(desired_config or {})
        resource = Resource(kind=kind, name=name, desired_config=config)
        resource.transition(ResourceState.RESOLVING)

        identity = self._lookup(resource)
        if identity is None and (kind, name) in self._created:
            identity = self._created[(kind, name)]
            logger.warning(f"Lookup for {kind.value} {name} missed a resource created in this run; "
                           f"reusing {identity}")

        if identity is not None:
            resource.identity = identity
            resource.transition(ResourceState.EXISTING)
            logger.info(f"♻️  Using existing {kind.value} {name}: {identity}")
            logger.debug(f"Desired configuration for {name} is not reconciled against the existing resource")
            return resource

        self._validate(resource)
        resource.identity = self._create(resource)
        self._created[(kind, name)] = resource.identity
        resource.transition(ResourceState.CREATED)
        logger.info(f"✅ Created {kind.value} {name}: {resource.identity}")
        return resource

    def _lookup(self, resource: Resource) -> Optional[str]:
        logger.info(f"🔍 Checking for existing {resource.kind.value}: {resource.name}")
        try:
            return self.provider.lookup(resource.kind, resource.name, resource.desired_config)
        except ProviderError as e:
            resource.fail(e.message)
            raise ResolutionError(
                f"Lookup of {resource.kind.value} failed: {e.message}",
                resource=resource,
                resource_name=resource.name,
                attempts=1,
                last_status=e.code,
            ) from e

    def _validate(self, resource: Resource) -> None:
        validator = self.validators.get(resource.kind)
        if validator is None:
            return
        try:
            validator(resource.name, resource.desired_config, self.provider)
        except ResolutionError as e:
            resource.fail(e.message)
            e.resource = resource
            raise

    def _create(self, resource: Resource) -> str:
        logger.info(f"Creating {resource.kind.value}: {resource.name}")
        try:
            identity = self.provider.create(resource.kind, resource.name, resource.desired_config)
        except ProviderError as e:
            resource.fail(e.message)
            raise ResolutionError(
                f"Failed to create {resource.kind.value}: {e.message}",
                resource=resource,
                resource_name=resource.name,
                attempts=1,
                last_status=e.code,
            ) from e
        if not identity:
            resource.fail("provider returned no identity")
            raise ResolutionError(
                f"Failed to create {resource.kind.value}: provider returned no identity",
                resource=resource,
                resource_name=resource.name,
                attempts=1,
            )
        return identity
