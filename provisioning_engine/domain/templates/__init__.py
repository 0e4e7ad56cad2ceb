"""Configuration templates."""

from .renderer import (
    AUTOMATION_VHOST,
    CHALLENGE_VHOST,
    COMPOSE_MANIFEST,
    HEALTHCHECK_SCRIPT,
    RENEWAL_SCRIPT,
    TEMPLATES,
    WORDPRESS_VHOST,
    render,
)


__all__ = [
    "render",
    "TEMPLATES",
    "CHALLENGE_VHOST",
    "WORDPRESS_VHOST",
    "AUTOMATION_VHOST",
    "COMPOSE_MANIFEST",
    "RENEWAL_SCRIPT",
    "HEALTHCHECK_SCRIPT",
]
