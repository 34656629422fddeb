from datetime import datetime, timezone

from flask import current_app, g, jsonify, request

from . import notification_bp
from ..auth.decorators import current_tenant_id, login_required, permission_required
from ..db import get_supabase
from ..errors import AppError

TEMPLATE_TYPES = ("sms", "email", "whatsapp", "in_app")


def _visible_to(notification, profile_id):
    return (
        notification.get("is_global")
        or notification.get("recipient_id") in (None, profile_id)
    )


@notification_bp.route("/notifications", methods=["GET"])
@login_required
def list_notifications():
    """In-app notifications for the signed-in user, newest first.

    Query param: unread=1 limits the list to unread notifications.
    """
    query = (get_supabase().table("notifications").select("*")
             .eq("tenant_id", current_tenant_id()))
    if request.args.get("unread") in ("1", "true"):
        query = query.eq("is_read", False)
    resp = query.order("created_at", desc=True).limit(request.args.get("limit", 50, type=int)).execute()
    rows = [n for n in resp.data or [] if _visible_to(n, g.profile.get("id"))]
    return jsonify({
        "status": "success",
        "data": rows,
        "unread_count": sum(1 for n in rows if not n.get("is_read")),
    }), 200


@notification_bp.route("/notifications/<notification_id>/read", methods=["POST"])
@login_required
def mark_notification_read(notification_id):
    resp = (get_supabase().table("notifications")
            .update({"is_read": True, "read_at": datetime.now(timezone.utc).isoformat()})
            .eq("id", notification_id)
            .eq("tenant_id", current_tenant_id())
            .execute())
    if not resp.data:
        raise AppError("Notification not found", "NOT_FOUND", 404)
    return jsonify({"status": "success", "data": resp.data[0]}), 200


@notification_bp.route("/notifications/read-all", methods=["POST"])
@login_required
def mark_all_read():
    client = get_supabase()
    unread = (client.table("notifications").select("*")
              .eq("tenant_id", current_tenant_id()).eq("is_read", False).execute())
    ids = [n["id"] for n in unread.data or [] if _visible_to(n, g.profile.get("id"))]
    if ids:
        (client.table("notifications")
         .update({"is_read": True, "read_at": datetime.now(timezone.utc).isoformat()})
         .in_("id", ids).execute())
    current_app.logger.info("Marked %d notifications read for %s", len(ids), g.profile.get("id"))
    return jsonify({"status": "success", "updated": len(ids)}), 200


@notification_bp.route("/notification-templates", methods=["GET"])
@login_required
def list_templates():
    resp = (get_supabase().table("notification_templates").select("*")
            .eq("tenant_id", current_tenant_id())
            .order("created_at", desc=True).execute())
    return jsonify({"status": "success", "data": resp.data or []}), 200


@notification_bp.route("/notification-templates", methods=["POST"])
@permission_required("notifications.manage")
def create_template():
    data = request.get_json(silent=True) or {}
    missing = [f for f in ("name", "type", "trigger_event", "message") if not data.get(f)]
    if missing:
        raise AppError(f"Missing fields: {', '.join(missing)}", "VALIDATION_ERROR", 400)
    if data["type"] not in TEMPLATE_TYPES:
        raise AppError(f"Unsupported template type: {data['type']}", "VALIDATION_ERROR", 400)

    row = {
        "tenant_id": current_tenant_id(),
        "name": data["name"],
        "type": data["type"],
        "trigger_event": data["trigger_event"],
        "subject": data.get("subject"),
        "message": data["message"],
        "is_active": bool(data.get("is_active", True)),
        "created_by": g.profile.get("id"),
    }
    resp = get_supabase().table("notification_templates").insert(row).execute()
    return jsonify({"status": "success", "data": resp.data[0] if resp.data else row}), 201
