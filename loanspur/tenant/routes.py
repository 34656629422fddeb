from flask import current_app, g, jsonify, request

from . import tenant_bp
from .utils import (
    build_subdomain_url,
    get_base_domain,
    get_subdomain_from_hostname,
    get_tenant_by_subdomain,
    is_main_host,
    resolve_tenant,
)
from ..db import get_supabase
from ..errors import AppError
from ..lib.currency import get_tenant_currency


def _base_domains():
    return tuple(current_app.config.get("BASE_DOMAINS") or ())


@tenant_bp.before_app_request
def load_request_tenant():
    """Attach the tenant owning the request host to ``g.tenant``."""
    g.tenant = None
    g.subdomain = None
    override = request.headers.get("X-Tenant-Subdomain")
    if request.path.startswith("/static") or request.method == "OPTIONS":
        return None
    if override:
        g.subdomain = override.strip().lower()
    else:
        g.subdomain = get_subdomain_from_hostname(request.host, _base_domains())
        if is_main_host(request.host, _base_domains()):
            return None

    try:
        client = get_supabase()
    except RuntimeError as e:
        current_app.logger.error("Tenant lookup for %s skipped: %s", request.host, e)
        return None
    if override:
        g.tenant = get_tenant_by_subdomain(client, g.subdomain)
    else:
        g.tenant = resolve_tenant(client, request.host, _base_domains())
    return None


@tenant_bp.route("/tenant/current", methods=["GET"])
def current_tenant():
    if not g.tenant:
        return jsonify({
            "status": "success",
            "tenant": None,
            "subdomain": g.subdomain,
            "base_domain": get_base_domain(request.host),
        }), 200
    return jsonify({
        "status": "success",
        "tenant": g.tenant,
        "subdomain": g.subdomain,
        "url": build_subdomain_url(g.tenant.get("subdomain"), "/", get_base_domain(request.host)),
    }), 200


@tenant_bp.route("/tenants/<subdomain>", methods=["GET"])
def tenant_by_subdomain(subdomain):
    tenant = get_tenant_by_subdomain(get_supabase(), subdomain.lower())
    if not tenant:
        raise AppError(f"No active tenant for subdomain {subdomain}", "NOT_FOUND", 404)
    return jsonify({"status": "success", "tenant": tenant}), 200


@tenant_bp.route("/tenants", methods=["GET"])
def active_tenants():
    """Directory of active tenants (subdomain and name only)."""
    resp = (get_supabase().table("tenants").select("id,name,subdomain")
            .eq("status", "active").order("name").execute())
    return jsonify({"status": "success", "data": resp.data or []}), 200


@tenant_bp.route("/tenant/currency", methods=["GET"])
def tenant_currency():
    tenant_id = g.tenant["id"] if g.tenant else request.args.get("tenant_id")
    settings = get_tenant_currency(get_supabase(), tenant_id, current_app.config.get("DEFAULT_CURRENCY", "KES"))
    return jsonify({"status": "success", **settings}), 200
