# provisioning_engine/domain/templates/renderer.py
"""Template renderer - pure text rendering from a DomainSet."""

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from provisioning_engine.core.errors import TemplateRenderError, UnknownTemplate
from provisioning_engine.core.models import DomainSet
from provisioning_engine.domain.templates import compose, nginx, scripts


PLACEHOLDER = re.compile(r"\{\{([a-z_]+)\}\}")
DELIMITERS = ("{{", "}}")


CHALLENGE_VHOST = "challenge-vhost"
WORDPRESS_VHOST = "wordpress-vhost"
AUTOMATION_VHOST = "automation-vhost"
COMPOSE_MANIFEST = "compose-manifest"
RENEWAL_SCRIPT = "renewal-script"
HEALTHCHECK_SCRIPT = "healthcheck-script"


@dataclass(frozen=True)
class TemplateDefinition:
    template_id: str
    text: str
    build_context: Callable[[DomainSet, Optional[Dict[str, Any]]], Dict[str, str]]


TEMPLATES: Dict[str, TemplateDefinition] = {
    t.template_id: t
    for t in (
        TemplateDefinition(CHALLENGE_VHOST, nginx.CHALLENGE_VHOST, nginx.challenge_context),
        TemplateDefinition(WORDPRESS_VHOST, nginx.WORDPRESS_VHOST, nginx.wordpress_context),
        TemplateDefinition(AUTOMATION_VHOST, nginx.AUTOMATION_VHOST, nginx.automation_context),
        TemplateDefinition(COMPOSE_MANIFEST, compose.COMPOSE_MANIFEST, compose.compose_context),
        TemplateDefinition(RENEWAL_SCRIPT, scripts.RENEWAL_SCRIPT, scripts.renewal_context),
        TemplateDefinition(HEALTHCHECK_SCRIPT, scripts.HEALTHCHECK_SCRIPT, scripts.healthcheck_context),
    )
}


def substitute(text: str, values: Dict[str, str]) -> str:
    """
    Replace every {{name}} in a single pass.

    Substituted values are never re-scanned, so domain text can not be
    mistaken for a placeholder.
    """
    for key, value in values.items():
        if any(d in str(value) for d in DELIMITERS):
            raise TemplateRenderError(f"Value for {key!r} contains a template delimiter")

    missing = sorted({m for m in PLACEHOLDER.findall(text) if m not in values})
    if missing:
        raise TemplateRenderError(f"Missing template values: {', '.join(missing)}")

    return PLACEHOLDER.sub(lambda m: str(values[m.group(1)]), text)


def render(template_id: str, domains: DomainSet, extra: Optional[Dict[str, Any]] = None) -> str:
    """
    Render a named template.

    Raises:
        UnknownTemplate: If template_id is not registered
        InvalidDomain: If the domain set violates the hostname grammar
        TemplateRenderError: If a required value is missing or unsafe
    """
    definition = TEMPLATES.get(template_id)
    if definition is None:
        raise UnknownTemplate(template_id)

    domains.validate()

    try:
        values = definition.build_context(domains, extra)
    except KeyError as e:
        raise TemplateRenderError(f"{template_id}: missing extra value {e}")

    return substitute(definition.text, values)
