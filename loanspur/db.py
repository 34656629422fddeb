from flask import current_app
from supabase import create_client, Client


def init_supabase(app, client=None):
    """Attach a Supabase client to the app.

    The real client is built on first use so the app can start (and list
    routes, run CLI help) without credentials in the environment.
    """
    app.extensions["supabase"] = client


def get_supabase() -> Client:
    client = current_app.extensions.get("supabase")
    if client is None:
        url = current_app.config.get("SUPABASE_URL")
        key = current_app.config.get("SUPABASE_KEY")
        if not url or not key:
            raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be set")
        client = create_client(url, key)
        current_app.extensions["supabase"] = client
    return client


def rest_headers(key, prefer=None):
    """Headers for calling the PostgREST endpoint directly with httpx."""
    headers = {
        "apikey": key,
        "Authorization": f"Bearer {key}",
        "Content-Type": "application/json",
    }
    if prefer:
        headers["Prefer"] = prefer
    return headers
