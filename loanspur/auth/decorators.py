from functools import wraps

import jwt
from flask import current_app, g, request

from ..db import get_supabase
from ..errors import AppError

ADMIN_ROLES = ("super_admin", "tenant_admin")


def _bearer_token():
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return None


def decode_access_token(token):
    """Validate a Supabase access token and return its claims."""
    try:
        return jwt.decode(
            token,
            current_app.config["SUPABASE_JWT_SECRET"],
            algorithms=["HS256"],
            audience="authenticated",
        )
    except jwt.ExpiredSignatureError:
        raise AppError("Session expired, please sign in again", "TOKEN_EXPIRED", 401)
    except jwt.InvalidTokenError as e:
        raise AppError(f"Invalid access token: {e}", "INVALID_TOKEN", 401)


def load_profile(user_id):
    resp = get_supabase().table("profiles").select("*").eq("user_id", user_id).limit(1).execute()
    return resp.data[0] if resp.data else None


def login_required(view_func):
    """Require a valid Supabase session; sets g.user and g.profile."""
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        token = _bearer_token()
        if not token:
            raise AppError("Authentication required", "UNAUTHENTICATED", 401)
        claims = decode_access_token(token)
        profile = load_profile(claims.get("sub"))
        if not profile:
            raise AppError("No profile found for this user", "PROFILE_NOT_FOUND", 403)
        if profile.get("is_active") is False:
            raise AppError("Account is deactivated", "ACCOUNT_INACTIVE", 403)
        g.user = claims
        g.profile = profile
        return view_func(*args, **kwargs)
    return wrapper


def role_required(*roles):
    """Ensure the signed-in profile has one of ``roles``."""
    def decorator(view_func):
        @wraps(view_func)
        @login_required
        def wrapper(*args, **kwargs):
            role = g.profile.get("role")
            if roles and role not in roles:
                raise AppError("Insufficient permissions", "PERMISSION_DENIED", 403)
            return view_func(*args, **kwargs)
        return wrapper
    return decorator


def has_permission(profile, permission_name):
    role = profile.get("role")
    if role in ADMIN_ROLES:
        return True
    client = get_supabase()
    perm = client.table("permissions").select("id").eq("name", permission_name).limit(1).execute()
    if not perm.data:
        return False
    granted = (client.table("role_permissions").select("id")
               .eq("tenant_id", profile.get("tenant_id"))
               .eq("role", role)
               .eq("permission_id", perm.data[0]["id"])
               .limit(1).execute())
    return bool(granted.data)


def permission_required(permission_name):
    def decorator(view_func):
        @wraps(view_func)
        @login_required
        def wrapper(*args, **kwargs):
            if not has_permission(g.profile, permission_name):
                raise AppError(f"Missing permission: {permission_name}", "PERMISSION_DENIED", 403)
            return view_func(*args, **kwargs)
        return wrapper
    return decorator


def current_tenant_id():
    """Tenant of the signed-in user, falling back to the host's tenant for super admins."""
    tenant_id = g.profile.get("tenant_id") if getattr(g, "profile", None) else None
    if not tenant_id and getattr(g, "tenant", None):
        tenant_id = g.tenant["id"]
    if not tenant_id:
        raise AppError("No tenant found", "NO_TENANT", 400)
    return tenant_id
