# provisioning_engine/domain/templates/compose.py
"""Compose manifest template rendered from ServiceSpec declarations."""

from typing import Any, Dict, Optional

import yaml

from provisioning_engine.core.models import DomainSet, ServiceSpec
from provisioning_engine.domain.stack import NAMED_VOLUMES


COMPOSE_MANIFEST = """\
# Generated by stack-provisioner. Regenerated on every run, do not edit.
{{manifest}}"""


def escape_interpolation(value: Any) -> str:
    """Compose interpolates `$`; a literal dollar must be written as `$$`."""
    return str(value).replace("$", "$$")


def service_entry(spec: ServiceSpec) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "image": escape_interpolation(spec.image_reference),
        "container_name": spec.name,
        "restart": spec.restart_policy,
    }

    if spec.env:
        entry["environment"] = {key: escape_interpolation(value) for key, value in spec.env.items()}
    if spec.mounts:
        entry["volumes"] = [escape_interpolation(f"{host}:{container}") for host, container in spec.mounts]
    if spec.ports:
        entry["ports"] = [f"{host}:{container}" for host, container in spec.ports]
    if spec.depends_on:
        entry["depends_on"] = list(spec.depends_on)
    if spec.networks:
        entry["networks"] = sorted(spec.networks)

    return entry


def compose_document(services) -> Dict[str, Any]:
    """Build the services, networks and volumes mapping for the manifest."""
    networks = sorted({net for spec in services for net in spec.networks})
    mounted = {host for spec in services for host, _ in spec.mounts}

    document: Dict[str, Any] = {
        "services": {spec.name: service_entry(spec) for spec in services},
    }
    if networks:
        document["networks"] = {net: {} for net in networks}
    volumes = [name for name in NAMED_VOLUMES if name in mounted]
    if volumes:
        document["volumes"] = {vol: {} for vol in volumes}
    return document


def compose_context(domains: DomainSet, extra: Optional[Dict[str, Any]]) -> Dict[str, str]:
    extra = extra or {}
    services = extra.get("services")
    if not services:
        raise KeyError("services")

    manifest = yaml.safe_dump(
        compose_document(services),
        sort_keys=False,
        default_flow_style=False,
    )
    return {"manifest": manifest}
