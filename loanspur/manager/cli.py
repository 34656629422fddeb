from datetime import datetime, timezone

import click
import httpx
from flask import current_app
from flask.cli import with_appcontext

from ..db import get_supabase, rest_headers
from ..errors import AppError
from ..tenant.utils import build_subdomain_url, get_base_domain, get_subdomain_from_hostname


def _timeout():
    return current_app.config.get("HTTP_TIMEOUT_SECONDS", 10)


def _rest_credentials():
    url = current_app.config.get("SUPABASE_URL")
    key = current_app.config.get("SUPABASE_ANON_KEY") or current_app.config.get("SUPABASE_KEY")
    if not url or not key:
        raise click.ClickException("Supabase credentials not set in environment.")
    return url.rstrip("/"), key


def check_url(url, timeout):
    try:
        response = httpx.get(url, timeout=timeout, follow_redirects=True)
    except httpx.TimeoutException:
        return {"url": url, "working": False, "error": "Timeout"}
    except httpx.HTTPError as e:
        return {"url": url, "working": False, "error": str(e)}
    return {
        "url": url,
        "working": 200 <= response.status_code < 400,
        "status": response.status_code,
        "reason": response.reason_phrase,
    }


@click.command("check-deployment")
@click.option("--url", "urls", multiple=True, help="URL to check (repeatable). Defaults to DIAGNOSTIC_URLS.")
@with_appcontext
def check_deployment(urls):
    """Check that the app domains and the database REST endpoint respond."""
    urls = list(urls) or list(current_app.config.get("DIAGNOSTIC_URLS") or [])
    supabase_url = current_app.config.get("SUPABASE_URL")
    if supabase_url and not any("/rest/v1" in u for u in urls):
        urls.append(f"{supabase_url.rstrip('/')}/rest/v1/")

    click.echo("🔍 Checking deployment status...\n")
    results = [check_url(url, _timeout()) for url in urls]
    for result in results:
        if result["working"]:
            click.echo(f"✅ {result['url']} - {result['status']} {result['reason']}")
        else:
            detail = result.get("error") or f"{result.get('status')} {result.get('reason')}"
            click.echo(f"❌ {result['url']} - {detail}")

    working = sum(1 for r in results if r["working"])
    click.echo("\n📋 Summary:")
    if working == len(results):
        click.echo("🎉 All endpoints are working!")
        return

    click.echo(f"⚠️  {working}/{len(results)} endpoints are working")
    app_down = not any(r["working"] for r in results if "/rest/v1" not in r["url"])
    db_down = any(not r["working"] for r in results if "/rest/v1" in r["url"])
    if app_down:
        click.echo("\n🔧 The application domains are not responding:")
        click.echo("   - check that the latest build is deployed")
        click.echo("   - check the DNS records and SSL certificates of the domains")
    if db_down:
        click.echo("\n🔧 The database REST endpoint is not responding:")
        click.echo("   - check SUPABASE_URL and the project status")
    raise click.exceptions.Exit(1)


@click.command("check-tenant")
@click.argument("subdomain")
@with_appcontext
def check_tenant(subdomain):
    """Look up an active tenant by subdomain through the REST endpoint."""
    url, key = _rest_credentials()
    click.echo(f"1️⃣ Checking tenant: {subdomain}")
    try:
        response = httpx.get(
            f"{url}/rest/v1/tenants",
            params={"subdomain": f"eq.{subdomain}", "status": "eq.active", "select": "*"},
            headers=rest_headers(key, prefer="count=exact"),
            timeout=_timeout(),
        )
        response.raise_for_status()
    except httpx.HTTPError as e:
        click.echo(f"❌ Error checking tenant: {e}")
        click.echo("   Possible issues: RLS policies blocking access, connection problems or an invalid API key")
        raise click.exceptions.Exit(1)

    data = response.json()
    count = (response.headers.get("content-range") or "").split("/")[-1] or len(data)
    click.echo(f"2️⃣ Database response: status {response.status_code}, count {count}")
    if not data:
        click.echo(f'\n❌ Tenant "{subdomain}" not found or not active')
        click.echo("   Create the tenant, check its status is \"active\" or verify the subdomain spelling")
    else:
        tenant = data[0]
        click.echo(f"\n✅ Tenant found: {tenant.get('name')} ({tenant.get('id')})")

    click.echo("\n3️⃣ Active tenants:")
    try:
        everyone = httpx.get(
            f"{url}/rest/v1/tenants",
            params={"status": "eq.active", "select": "id,name,subdomain,status"},
            headers=rest_headers(key),
            timeout=_timeout(),
        )
    except httpx.HTTPError as e:
        click.echo(f"❌ Error listing active tenants: {e}")
        raise click.exceptions.Exit(1)
    if everyone.status_code == 200:
        tenants = everyone.json()
        click.echo(f"   Total active tenants: {len(tenants)}")
        for tenant in tenants:
            click.echo(f"   - {tenant.get('subdomain')} ({tenant.get('name')})")
    if not data:
        raise click.exceptions.Exit(1)


@click.command("check-subdomain")
@click.argument("hostname")
@with_appcontext
def check_subdomain(hostname):
    """Show how a hostname maps to a tenant subdomain."""
    base_domains = tuple(current_app.config.get("BASE_DOMAINS") or ())
    subdomain = get_subdomain_from_hostname(hostname, base_domains)
    base = get_base_domain(hostname)
    click.echo(f"Hostname:    {hostname}")
    click.echo(f"Subdomain:   {subdomain or '(main site)'}")
    click.echo(f"Base domain: {base}")
    if subdomain:
        click.echo(f"Tenant URL:  {build_subdomain_url(subdomain, '/auth', base)}")


@click.command("test-email")
@click.argument("to_email")
@click.option("--from-name", default="LoanSpur", show_default=True)
@click.option("--direct", is_flag=True, help="Send from this process instead of calling the running handler.")
@with_appcontext
def test_email(to_email, from_name, direct):
    """Send a test email to verify the email configuration."""
    if direct:
        from ..notification.email_utils import send_test_email
        try:
            email_id = send_test_email(to_email, from_name)
        except AppError as e:
            click.echo(f"❌ {e.message}")
            raise click.exceptions.Exit(1)
        click.echo(f"✅ Test email sent (id {email_id})")
        return

    endpoint = f"{current_app.config['FUNCTIONS_BASE_URL'].rstrip('/')}/send-test-email"
    headers = {"Content-Type": "application/json"}
    if current_app.config.get("SUPABASE_ANON_KEY"):
        headers["Authorization"] = f"Bearer {current_app.config['SUPABASE_ANON_KEY']}"
    try:
        response = httpx.post(endpoint, json={"testEmail": to_email, "fromName": from_name},
                              headers=headers, timeout=_timeout())
    except httpx.HTTPError as e:
        click.echo(f"❌ Could not reach {endpoint}: {e}")
        raise click.exceptions.Exit(1)

    try:
        body = response.json()
    except ValueError:
        body = {"error": response.text}
    if response.status_code == 200 and body.get("success"):
        click.echo(f"✅ {body.get('message')} (id {body.get('emailId')})")
    else:
        click.echo(f"❌ {response.status_code}: {body.get('error') or body.get('message')}")
        raise click.exceptions.Exit(1)


@click.command("create-super-admin")
@click.argument("email")
@click.option("--user-id", required=True, help="Auth user id the profile belongs to.")
@click.option("--first-name", default="Super", show_default=True)
@click.option("--last-name", default="Admin", show_default=True)
@with_appcontext
def create_super_admin(email, user_id, first_name, last_name):
    """Create a super admin profile (no tenant) for an existing auth user."""
    client = get_supabase()
    existing = client.table("profiles").select("id,role").eq("user_id", user_id).limit(1).execute()
    if existing.data:
        click.echo(f"Profile already exists with role {existing.data[0].get('role')}.")
        return

    now = datetime.now(timezone.utc).isoformat()
    client.table("profiles").insert({
        "user_id": user_id,
        "email": email,
        "first_name": first_name,
        "last_name": last_name,
        "role": "super_admin",
        "is_active": True,
        "tenant_id": None,
        "created_at": now,
        "updated_at": now,
    }).execute()
    click.echo("Super admin profile created successfully.")


@click.command("harmonize-loans")
@click.option("--tenant-id", default=None, help="Limit to one tenant.")
@click.option("--dry-run", is_flag=True, help="Report mismatches without writing.")
@with_appcontext
def harmonize_loans(tenant_id, dry_run):
    """Reconcile stored loan rates and balances with schedules and payments."""
    from ..finance.services import HARMONIZABLE_STATUSES, harmonize_all_loans, harmonize_loan

    client = get_supabase()
    if not dry_run:
        results = harmonize_all_loans(client, tenant_id)
        for row in results:
            if "error" in row:
                click.echo(f"❌ {row['loan_id']}: {row['error']}")
            else:
                click.echo(f"✅ {row['loan_id']}: {row['old_outstanding']} -> {row['new_outstanding']}")
        failed = sum(1 for row in results if "error" in row)
        click.echo(f"Harmonized {len(results) - failed} loans.")
        if failed:
            click.echo(f"{failed} loans failed.")
            raise click.exceptions.Exit(1)
        return

    query = client.table("loans").select("*").in_("status", HARMONIZABLE_STATUSES)
    if tenant_id:
        query = query.eq("tenant_id", tenant_id)
    mismatched = 0
    for loan in query.execute().data or []:
        result = harmonize_loan(client, loan, persist=False)
        if result["balance_inconsistent"]:
            mismatched += 1
            click.echo(f"⚠️  {loan['id']}: stored {result['stored_outstanding']}, "
                       f"calculated {result['calculated_outstanding']}")
    click.echo(f"{mismatched} loans need harmonization.")
