# provisioning_engine/domain/templates/nginx.py
"""Nginx vhost templates - challenge-only and full TLS variants."""

from typing import Any, Dict, Optional

from provisioning_engine.core.models import CertPaths, DomainSet, VHostConfig
from provisioning_engine.domain.stack import PROXY_CERTS_DIR, PROXY_WEBROOT, WORDPRESS_ROOT


PHP_UPSTREAM = "php:9000"
AUTOMATION_UPSTREAM = "http://n8n:5678"


CHALLENGE_VHOST = """\
# Temporary config for the HTTP-01 challenge; replaced once certificates exist.
server {
    listen 80;
    server_name {{server_names}};

    location /.well-known/acme-challenge/ {
        root {{webroot}};
    }

    location / {
        return 404;
    }
}
"""


_REDIRECT_SERVER = """\
server {
    listen 80;
    server_name {{server_name}};

    location /.well-known/acme-challenge/ {
        root {{webroot}};
    }

    location / {
        return 301 https://$host$request_uri;
    }
}
"""


WORDPRESS_VHOST = _REDIRECT_SERVER + """
server {
    listen 443 ssl;
    server_name {{server_name}};

    ssl_certificate {{fullchain}};
    ssl_certificate_key {{privkey}};

    root {{document_root}};
    index index.php index.html;

    location / {
        try_files $uri $uri/ /index.php?$args;
    }

    location ~ \\.php$ {
        include fastcgi_params;
        fastcgi_pass {{upstream}};
        fastcgi_index index.php;
        fastcgi_param SCRIPT_FILENAME $document_root$fastcgi_script_name;
    }
}
"""


AUTOMATION_VHOST = _REDIRECT_SERVER + """
server {
    listen 443 ssl;
    server_name {{server_name}};

    ssl_certificate {{fullchain}};
    ssl_certificate_key {{privkey}};

    location / {
        proxy_pass {{upstream}};
        proxy_http_version 1.1;
        proxy_set_header Upgrade $http_upgrade;
        proxy_set_header Connection "upgrade";
        proxy_set_header Host $host;
        proxy_set_header X-Real-IP $remote_addr;
        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
        proxy_set_header X-Forwarded-Proto $scheme;
    }
}
"""


def lineage_cert_paths(domains: DomainSet, certs_dir: str = PROXY_CERTS_DIR) -> CertPaths:
    """
    Certificate paths as seen by the proxy.

    Multi-SAN issuance produces a single lineage named after the primary
    domain, so every vhost points at live/<primary>/.
    """
    base = f"{certs_dir.rstrip('/')}/live/{domains.primary}"
    return CertPaths(fullchain=f"{base}/fullchain.pem", key=f"{base}/privkey.pem")


def challenge_vhost(domains: DomainSet) -> VHostConfig:
    """One plain-HTTP server block answering for every hostname in the set."""
    return VHostConfig.challenge(" ".join(domains.hostnames))


def challenge_context(domains: DomainSet, extra: Optional[Dict[str, Any]]) -> Dict[str, str]:
    extra = extra or {}
    return {
        "server_names": challenge_vhost(domains).server_name,
        "webroot": extra.get("webroot", PROXY_WEBROOT),
    }


def _tls_context(vhost: VHostConfig, extra: Dict[str, Any]) -> Dict[str, str]:
    return {
        "server_name": vhost.server_name,
        "webroot": extra.get("webroot", PROXY_WEBROOT),
        "fullchain": vhost.cert_paths.fullchain,
        "privkey": vhost.cert_paths.key,
        "upstream": vhost.upstream,
    }


def wordpress_vhost(domains: DomainSet, extra: Optional[Dict[str, Any]] = None) -> VHostConfig:
    extra = extra or {}
    return VHostConfig.full_tls(
        domains.primary,
        extra.get("cert_paths") or lineage_cert_paths(domains),
        upstream=extra.get("upstream", PHP_UPSTREAM),
    )


def automation_vhost(domains: DomainSet, extra: Optional[Dict[str, Any]] = None) -> VHostConfig:
    extra = extra or {}
    return VHostConfig.full_tls(
        domains.automation_host,
        extra.get("cert_paths") or lineage_cert_paths(domains),
        upstream=extra.get("upstream", AUTOMATION_UPSTREAM),
    )


def wordpress_context(domains: DomainSet, extra: Optional[Dict[str, Any]]) -> Dict[str, str]:
    extra = extra or {}
    context = _tls_context(wordpress_vhost(domains, extra), extra)
    context["document_root"] = extra.get("document_root", WORDPRESS_ROOT)
    return context


def automation_context(domains: DomainSet, extra: Optional[Dict[str, Any]]) -> Dict[str, str]:
    extra = extra or {}
    return _tls_context(automation_vhost(domains, extra), extra)
