# provisioning_engine/domain/templates/scripts.py
"""Shell script templates: certificate renewal and post-install check."""

import shlex
from typing import Any, Dict, Optional

from provisioning_engine.core.models import DomainSet
from provisioning_engine.domain.stack import PROXY_WEBROOT


RENEWAL_FAILURE_MARKER = "renewal failed"


# Secrets are never rendered into the script: they come from .env at runtime.
RENEWAL_SCRIPT = """\
#!/bin/bash
# Generated by stack-provisioner. Regenerated on every run, do not edit.
set -u

cd {{project_dir}} || exit 1

if [ -f .env ]; then
  set -a
  . ./.env
  set +a
fi

HOSTNAMES={{hostnames}}
CERTS_DIR={{certs_dir}}
WEBROOT_DIR={{webroot_dir}}
CERTBOT_IMAGE={{certbot_image}}
TELEGRAM_API={{telegram_api_url}}

BOT_TOKEN="${TELEGRAM_BOT_TOKEN:-}"
CHAT_ID="${TELEGRAM_CHAT_ID:-}"

OUTPUT=$(docker run --rm \\
  -v "$CERTS_DIR:/etc/letsencrypt" \\
  -v "$WEBROOT_DIR:{{container_webroot}}" \\
  "$CERTBOT_IMAGE" renew \\
  --webroot --webroot-path={{container_webroot}} 2>&1)
STATUS=$?

if [ "$STATUS" -ne 0 ] || printf '%s' "$OUTPUT" | grep -qi {{failure_marker}}; then
  if [ -n "$BOT_TOKEN" ] && [ -n "$CHAT_ID" ]; then
    curl -s -X POST "$TELEGRAM_API/bot$BOT_TOKEN/sendMessage" \\
      --data-urlencode "chat_id=$CHAT_ID" \\
      --data-urlencode "text=❌ SSL certificate renewal failed for $HOSTNAMES.

$OUTPUT" >/dev/null || true
  fi
fi

{{compose}} -f {{compose_file}} exec -T {{proxy_service}} nginx -s reload
"""


HEALTHCHECK_SCRIPT = """\
#!/bin/bash
# Generated by stack-provisioner. Regenerated on every run, do not edit.
set -u

cd {{project_dir}} || exit 1
exec {{cli}} healthcheck --domain {{primary}} --project-dir {{project_dir}} "$@"
"""


def renewal_message(domains: DomainSet, output: str = "") -> str:
    """Notification text shared by the script and the renew command."""
    text = f"❌ SSL certificate renewal failed for {', '.join(domains.hostnames)}."
    if output:
        text = f"{text}\n\n{output.strip()}"
    return text


def renewal_context(domains: DomainSet, extra: Optional[Dict[str, Any]]) -> Dict[str, str]:
    extra = extra or {}
    project_dir = str(extra["project_dir"])
    return {
        "project_dir": shlex.quote(project_dir),
        "hostnames": shlex.quote(", ".join(domains.hostnames)),
        "certs_dir": shlex.quote(str(extra["certs_dir"])),
        "webroot_dir": shlex.quote(str(extra["webroot_dir"])),
        "certbot_image": shlex.quote(extra.get("certbot_image", "certbot/certbot")),
        "telegram_api_url": shlex.quote(extra.get("telegram_api_url", "https://api.telegram.org")),
        "container_webroot": shlex.quote(PROXY_WEBROOT),
        "failure_marker": shlex.quote(RENEWAL_FAILURE_MARKER),
        "compose": shlex.join(extra.get("compose_command", ["docker", "compose"])),
        "compose_file": shlex.quote(str(extra["compose_file"])),
        "proxy_service": shlex.quote(extra.get("proxy_service", "nginx")),
    }


def healthcheck_context(domains: DomainSet, extra: Optional[Dict[str, Any]]) -> Dict[str, str]:
    extra = extra or {}
    return {
        "project_dir": shlex.quote(str(extra["project_dir"])),
        "cli": shlex.quote(extra.get("cli", "stack-provisioner")),
        "primary": shlex.quote(domains.primary),
    }
