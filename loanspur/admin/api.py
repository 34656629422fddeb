import re

from flask import current_app, g, jsonify, request

from . import admin_bp
from ..auth.decorators import ADMIN_ROLES, current_tenant_id, login_required, role_required
from ..db import get_supabase
from ..errors import AppError


def payment_type_code(name):
    """PAYMENT_TYPE style code for a payment type name."""
    code = re.sub(r"\s+", "_", (name or "").upper())
    return re.sub(r"[^A-Z_]", "", code)


# --- Payment types ---

@admin_bp.route("/payment-types", methods=["GET"])
@login_required
def list_payment_types():
    query = get_supabase().table("payment_types").select("*").eq("tenant_id", current_tenant_id())
    if request.args.get("active") in ("1", "true"):
        query = query.eq("is_active", True)
    resp = query.order("position").execute()
    return jsonify({"status": "success", "data": resp.data or []}), 200


@admin_bp.route("/payment-types", methods=["POST"])
@role_required(*ADMIN_ROLES)
def create_payment_type():
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    if not name:
        raise AppError("name is required", "VALIDATION_ERROR", 400)
    code = payment_type_code(name)
    if not code:
        raise AppError("name must contain letters", "VALIDATION_ERROR", 400)

    client = get_supabase()
    tenant_id = current_tenant_id()
    existing = client.table("payment_types").select("id,position").eq("tenant_id", tenant_id).execute().data or []
    position = max((row.get("position") or 0 for row in existing), default=0) + 1

    row = {
        "tenant_id": tenant_id,
        "name": name,
        "code": code,
        "description": data.get("description"),
        "is_cash_payment": bool(data.get("is_cash_payment", False)),
        "is_active": bool(data.get("is_active", True)),
        "position": position,
    }
    resp = client.table("payment_types").insert(row).execute()
    current_app.logger.info("Payment type %s created for tenant %s", code, tenant_id)
    return jsonify({"status": "success", "data": resp.data[0] if resp.data else row}), 201


# --- Permissions ---

@admin_bp.route("/permissions", methods=["GET"])
@login_required
def list_permissions():
    resp = get_supabase().table("permissions").select("*").order("module").order("name").execute()
    return jsonify({"status": "success", "data": resp.data or []}), 200


@admin_bp.route("/role-permissions", methods=["GET"])
@role_required(*ADMIN_ROLES)
def list_role_permissions():
    client = get_supabase()
    query = client.table("role_permissions").select("*").eq("tenant_id", current_tenant_id())
    if request.args.get("role"):
        query = query.eq("role", request.args["role"])
    grants = query.execute().data or []

    ids = list({row["permission_id"] for row in grants if row.get("permission_id")})
    permissions = {}
    if ids:
        permissions = {p["id"]: p for p in client.table("permissions").select("*").in_("id", ids).execute().data or []}
    for row in grants:
        row["permission"] = permissions.get(row.get("permission_id"))
    return jsonify({"status": "success", "data": grants}), 200


@admin_bp.route("/role-permissions", methods=["POST"])
@role_required(*ADMIN_ROLES)
def grant_role_permission():
    data = request.get_json(silent=True) or {}
    role = data.get("role")
    permission_id = data.get("permission_id")
    if not role or not permission_id:
        raise AppError("role and permission_id are required", "VALIDATION_ERROR", 400)

    client = get_supabase()
    tenant_id = current_tenant_id()
    if not client.table("permissions").select("id").eq("id", permission_id).limit(1).execute().data:
        raise AppError("Permission not found", "NOT_FOUND", 404)
    duplicate = (client.table("role_permissions").select("id")
                 .eq("tenant_id", tenant_id).eq("role", role).eq("permission_id", permission_id)
                 .limit(1).execute())
    if duplicate.data:
        raise AppError("Role already has this permission", "DUPLICATE_ENTRY", 409)

    row = {"tenant_id": tenant_id, "role": role, "permission_id": permission_id, "granted_by": g.profile.get("id")}
    resp = client.table("role_permissions").insert(row).execute()
    return jsonify({"status": "success", "data": resp.data[0] if resp.data else row}), 201


@admin_bp.route("/role-permissions/<grant_id>", methods=["DELETE"])
@role_required(*ADMIN_ROLES)
def revoke_role_permission(grant_id):
    resp = (get_supabase().table("role_permissions").delete()
            .eq("id", grant_id).eq("tenant_id", current_tenant_id()).execute())
    if not resp.data:
        raise AppError("Role permission not found", "NOT_FOUND", 404)
    return jsonify({"status": "success", "message": "Permission revoked"}), 200
