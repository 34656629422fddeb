"""Tenant resolution from the request hostname.

Tenants live on ``<subdomain>.loanspurcbs.com`` in production and
``<subdomain>.loanspur.online`` in development. Tenants with a custom domain
are matched on the ``domain`` column instead.
"""

import logging

logger = logging.getLogger(__name__)

PRODUCTION_DOMAIN = "loanspurcbs.com"
DEVELOPMENT_DOMAIN = "loanspur.online"
BASE_DOMAINS = (PRODUCTION_DOMAIN, DEVELOPMENT_DOMAIN)

TENANT_COLUMNS = "id,name,slug,subdomain,domain,logo_url,status,currency_code,currency_decimal_places"


def strip_port(hostname):
    return (hostname or "").split(":")[0].strip().lower()


def is_main_host(hostname, base_domains=BASE_DOMAINS):
    host = strip_port(hostname)
    if not host:
        return True
    return (
        host in base_domains
        or host == "localhost"
        or "127.0.0.1" in host
        or "lovableproject.com" in host
    )


def get_base_domain(hostname=None):
    host = strip_port(hostname)
    if host == DEVELOPMENT_DOMAIN or host.endswith("." + DEVELOPMENT_DOMAIN):
        return DEVELOPMENT_DOMAIN
    return PRODUCTION_DOMAIN


def get_subdomain_from_hostname(hostname, base_domains=BASE_DOMAINS):
    host = strip_port(hostname)
    if is_main_host(host, base_domains):
        return None
    for base in base_domains:
        suffix = "." + base
        if host.endswith(suffix):
            subdomain = host[:-len(suffix)]
            return None if subdomain in ("", "www") else subdomain
    logger.debug("No tenant subdomain pattern matched host %s", host)
    return None


def build_subdomain_url(subdomain, path="", base_domain=None):
    domain = base_domain or get_base_domain()
    host = f"{subdomain}.{domain}" if subdomain else domain
    if not path.startswith("/"):
        path = "/" + path
    return f"https://{host}{path}"


def get_tenant_by_subdomain(client, subdomain):
    """The active tenant for ``subdomain``, or None.

    Lookup failures are logged and treated as "no tenant" so a broken
    backend never turns into a 500 on every page.
    """
    if not subdomain:
        return None
    try:
        resp = (client.table("tenants").select(TENANT_COLUMNS)
                .eq("subdomain", subdomain).eq("status", "active").limit(1).execute())
    except Exception as e:
        logger.error("Tenant lookup for subdomain %s failed: %s", subdomain, e)
        return None
    if not resp.data:
        logger.info("No active tenant for subdomain %s", subdomain)
        return None
    return resp.data[0]


def get_tenant_by_domain(client, domain):
    if not domain:
        return None
    try:
        resp = (client.table("tenants").select(TENANT_COLUMNS)
                .eq("domain", domain).eq("status", "active").limit(1).execute())
    except Exception as e:
        logger.error("Tenant lookup for domain %s failed: %s", domain, e)
        return None
    return resp.data[0] if resp.data else None


def resolve_tenant(client, hostname, base_domains=BASE_DOMAINS):
    host = strip_port(hostname)
    subdomain = get_subdomain_from_hostname(host, base_domains)
    if subdomain:
        return get_tenant_by_subdomain(client, subdomain)
    if is_main_host(host, base_domains):
        return None
    return get_tenant_by_domain(client, host)
