#provisioning_engine\core\validation.py
import re

from provisioning_engine.core.errors import InvalidDomain


HOSTNAME_CHARS = re.compile(r"^[A-Za-z0-9.-]+$")
MAX_HOSTNAME_LENGTH = 253
MAX_LABEL_LENGTH = 63


def normalize_domain(raw: str) -> str:
    """Strip every whitespace character from user input."""
    if raw is None:
        return ""
    return "".join(raw.split())


def validate_hostname(domain: str) -> str:
    """
    Validate a hostname against the strict grammar.

    Only ASCII letters, digits, hyphen and dot are accepted. Returns the
    domain unchanged so callers can chain it.
    """
    # -------------------------
    # Characters
    # -------------------------
    if not isinstance(domain, str) or not domain:
        raise InvalidDomain(str(domain), "domain is required")

    if not domain.isascii():
        raise InvalidDomain(
            domain,
            "non-ASCII domain detected, enter the domain in Punycode",
        )

    if any(ch.isspace() for ch in domain):
        raise InvalidDomain(domain, "domain must not contain whitespace")

    if not HOSTNAME_CHARS.match(domain):
        raise InvalidDomain(
            domain, "only letters, digits, '-' and '.' are allowed"
        )

    # -------------------------
    # Structure
    # -------------------------
    if len(domain) > MAX_HOSTNAME_LENGTH:
        raise InvalidDomain(domain, "domain is longer than 253 characters")

    labels = domain.split(".")
    if len(labels) < 2:
        raise InvalidDomain(domain, "domain must contain at least one dot")

    for label in labels:
        if not label:
            raise InvalidDomain(domain, "empty label")
        if len(label) > MAX_LABEL_LENGTH:
            raise InvalidDomain(domain, f"label {label!r} exceeds 63 characters")
        if label.startswith("-") or label.endswith("-"):
            raise InvalidDomain(
                domain, f"label {label!r} must not start or end with '-'"
            )

    return domain
