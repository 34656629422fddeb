"""Operator commands for ``flask`` (deployment checks, tenant lookups, email tests)."""


def register_cli(app):
    from .cli import (
        check_deployment,
        check_subdomain,
        check_tenant,
        create_super_admin,
        harmonize_loans,
        test_email,
    )
    for command in (check_deployment, check_tenant, check_subdomain, test_email,
                    create_super_admin, harmonize_loans):
        app.cli.add_command(command)

# Usage:
# flask check-deployment
# flask check-tenant umoja-magharibi
# flask test-email someone@example.com --from-name "LoanSpur"
