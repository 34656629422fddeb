from flask import jsonify, request

from . import groups_bp
from ..auth.decorators import current_tenant_id, login_required
from ..db import get_supabase
from ..errors import AppError


@groups_bp.route("/groups", methods=["GET"])
@login_required
def list_groups():
    query = get_supabase().table("groups").select("*").eq("tenant_id", current_tenant_id())
    if request.args.get("active") in ("1", "true"):
        query = query.eq("is_active", True)
    resp = query.order("name").execute()
    return jsonify({"status": "success", "data": resp.data or []}), 200


@groups_bp.route("/groups/<group_id>/members", methods=["GET"])
@login_required
def group_members(group_id):
    client = get_supabase()
    group = (client.table("groups").select("*")
             .eq("id", group_id).eq("tenant_id", current_tenant_id()).limit(1).execute())
    if not group.data:
        raise AppError("Group not found", "NOT_FOUND", 404)

    members = (client.table("group_members").select("*")
               .eq("group_id", group_id).eq("is_active", True).execute().data or [])
    client_ids = [m["client_id"] for m in members]
    clients = {}
    if client_ids:
        rows = client.table("clients").select("id,first_name,last_name,phone").in_("id", client_ids).execute().data
        clients = {c["id"]: c for c in rows or []}
    for member in members:
        member["client"] = clients.get(member["client_id"])
    return jsonify({"status": "success", "group": group.data[0], "data": members}), 200
