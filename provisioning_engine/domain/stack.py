#provisioning_engine\domain\stack.py

"""Service declarations for the WordPress + n8n stack."""

from typing import Tuple

from provisioning_engine.config import ProvisionerSettings
from provisioning_engine.core.models import DomainSet, ServiceSpec


# Roles the orchestrator addresses services by
PROXY_ROLE = "proxy"
DATABASE_ROLE = "database"

INTERNAL_NETWORK = "internal"
EXTERNAL_NETWORK = "external"

# Mount paths inside the proxy container
PROXY_CONF_DIR = "/etc/nginx/conf.d"
PROXY_CERTS_DIR = "/etc/nginx/certs"
PROXY_WEBROOT = "/var/www/certbot"
WORDPRESS_ROOT = "/var/www/html"

NAMED_VOLUMES = ("mysql_data", "wordpress_data")


def default_stack(domains: DomainSet, settings: ProvisionerSettings) -> Tuple[ServiceSpec, ...]:
    """Build the declared services in compose order."""
    automation_host = domains.automation_host

    mysql = ServiceSpec(
        name="mysql",
        role=DATABASE_ROLE,
        image_reference=settings.mysql_image,
        env={
            "MYSQL_ROOT_PASSWORD": settings.mysql_root_password,
            "MYSQL_DATABASE": settings.mysql_database,
            "MYSQL_USER": settings.mysql_user,
            "MYSQL_PASSWORD": settings.mysql_password,
        },
        mounts=(("mysql_data", "/var/lib/mysql"),),
        networks={INTERNAL_NETWORK},
    )

    wordpress = ServiceSpec(
        name="wordpress",
        image_reference=settings.wordpress_image,
        env={
            "WORDPRESS_DB_HOST": "mysql:3306",
            "WORDPRESS_DB_NAME": settings.mysql_database,
            "WORDPRESS_DB_USER": settings.mysql_user,
            "WORDPRESS_DB_PASSWORD": settings.mysql_password,
        },
        mounts=(("wordpress_data", WORDPRESS_ROOT),),
        networks={INTERNAL_NETWORK},
        depends_on=("mysql",),
    )

    php = ServiceSpec(
        name="php",
        image_reference=settings.php_image,
        mounts=(("wordpress_data", WORDPRESS_ROOT),),
        networks={INTERNAL_NETWORK},
    )

    n8n = ServiceSpec(
        name="n8n",
        image_reference=settings.automation_image,
        env={
            "DB_TYPE": "sqlite",
            "N8N_HOST": automation_host,
            "WEBHOOK_URL": f"https://{automation_host}/",
        },
        mounts=(("./n8n_data", "/home/node/.n8n"),),
        networks={INTERNAL_NETWORK},
        ports=((5678, 5678),),
    )

    redis = ServiceSpec(
        name="redis",
        image_reference=settings.redis_image,
        networks={INTERNAL_NETWORK},
    )

    nginx = ServiceSpec(
        name="nginx",
        role=PROXY_ROLE,
        image_reference=settings.proxy_image,
        mounts=(
            ("./nginx/conf.d", PROXY_CONF_DIR),
            ("./nginx/certs", PROXY_CERTS_DIR),
            ("./nginx/www", PROXY_WEBROOT),
            ("wordpress_data", WORDPRESS_ROOT),
        ),
        networks={INTERNAL_NETWORK, EXTERNAL_NETWORK},
        ports=((80, 80), (443, 443)),
        depends_on=("wordpress", "php", "n8n"),
    )

    return (mysql, wordpress, php, n8n, redis, nginx)


def service_for_role(stack: Tuple[ServiceSpec, ...], role: str) -> ServiceSpec:
    """Select a declared service by its role in the stack."""
    for spec in stack:
        if spec.role == role:
            return spec
    raise LookupError(f"No service declared for role {role!r}")


def proxy_service(stack: Tuple[ServiceSpec, ...]) -> ServiceSpec:
    return service_for_role(stack, PROXY_ROLE)


def database_service(stack: Tuple[ServiceSpec, ...]) -> ServiceSpec:
    return service_for_role(stack, DATABASE_ROLE)
