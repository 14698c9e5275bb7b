# Overview: Flask CLI command groups for bootstrap, inspection, and the notification worker.

# backend/commerce/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Create a demo tenant, owner, customer and a product with two variants.
#
# Tenant management:
# - python -m flask tenants list
# - python -m flask tenants create --name "Shop with Seye" --slug sws
#
# Users and sessions:
# - python -m flask users create --tenant sws --email owner@sws.local --role admin --access-level owner
# - python -m flask sessions issue --tenant sws --email owner@sws.local
#   Print a bearer token for the user (login flows live outside this service).
# - python -m flask sessions revoke <token>
#
# Notification worker:
# - python -m flask notifications work [--once] [--interval 5] [--batch 20]
#   Deliver due notification jobs; loops until interrupted unless --once.
# - python -m flask notifications list [--status failed] [--limit 50]

import time

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import CommerceError
from .extensions import db
from .models import Product, Tenant, User, Variant
from .models.auth import VALID_ROLES, ROLE_ADMIN, ROLE_CUSTOMER
from .models.notifications import (
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_PROCESSING,
    JOB_STATUS_QUEUED,
)
from .permissions import ACCESS_LEVELS, ACCESS_OWNER
from .services import notification_service, session_service, tenant_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()
    click.echo("BUILD  Creating all tables...")
    db.create_all()
    click.echo("PASS Database reset complete")


@system_group.command('seed-demo')
@click.option('--slug', default='sws', help='Tenant slug')
@with_appcontext
def seed_demo(slug):
    """Idempotent demo data: tenant, owner, customer, one product with stock."""
    tenant = db.session.query(Tenant).filter_by(slug=slug).first()
    if not tenant:
        tenant = Tenant(name="Shop with Seye", slug=slug, is_active=True)
        db.session.add(tenant)
        db.session.commit()
        click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, slug: {tenant.slug})")
    else:
        click.echo(f"PASS Using existing tenant: {tenant.name} (ID: {tenant.id})")

    demo_users = [
        ("owner@sws.local", "Store", "Owner", ROLE_ADMIN, ACCESS_OWNER),
        ("customer@sws.local", "Demo", "Customer", ROLE_CUSTOMER, None),
    ]
    for email, first, last, role, access_level in demo_users:
        if db.session.query(User).filter_by(tenant_id=tenant.id, email=email).first():
            click.echo(f"WARN  User '{email}' already exists, skipping...")
            continue
        db.session.add(User(
            tenant_id=tenant.id,
            email=email,
            first_name=first,
            last_name=last,
            role=role,
            access_level=access_level,
        ))
        click.echo(f"PASS Created user: {email} ({role})")
    db.session.commit()

    if not db.session.query(Product).filter_by(tenant_id=tenant.id, slug="classic-tee").first():
        product = Product(tenant_id=tenant.id, slug="classic-tee", name="Classic Tee")
        product.variants.append(Variant(tenant_id=tenant.id, sku="TEE-M-BLK", size="M", color="Black", stock=10, price_minor=15000))
        product.variants.append(Variant(tenant_id=tenant.id, sku="TEE-L-WHT", size="L", color="White", stock=4, price_minor=15000))
        db.session.add(product)
        db.session.commit()
        click.echo(f"PASS Created product: {product.name} (ID: {product.id})")


@click.group('tenants')
def tenants_group():
    """Tenant (store instance) management."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    tenants = db.session.query(Tenant).order_by(Tenant.id).all()
    if not tenants:
        click.echo("No tenants found")
        return
    for tenant in tenants:
        status = "active" if tenant.is_active else "inactive"
        click.echo(f"{tenant.id:>4}  {tenant.slug:<20} {tenant.name} [{status}]")


@tenants_group.command('create')
@click.option('--name', required=True)
@click.option('--slug', required=True)
@with_appcontext
def create_tenant(name, slug):
    slug = slug.strip().lower()
    if db.session.query(Tenant).filter_by(slug=slug).first():
        raise click.ClickException(f"Tenant slug '{slug}' already exists")
    tenant = Tenant(name=name.strip(), slug=slug, is_active=True)
    db.session.add(tenant)
    db.session.commit()
    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, slug: {tenant.slug})")


@click.group('users')
def users_group():
    """User bootstrap."""


@users_group.command('create')
@click.option('--tenant', 'tenant_ref', required=True, help='Tenant id or slug')
@click.option('--email', required=True)
@click.option('--first-name', default='')
@click.option('--last-name', default='')
@click.option('--role', type=click.Choice(sorted(VALID_ROLES)), default=ROLE_CUSTOMER)
@click.option('--access-level', type=click.Choice(ACCESS_LEVELS), default=None)
@with_appcontext
def create_user(tenant_ref, email, first_name, last_name, role, access_level):
    try:
        tenant = tenant_service.resolve_tenant(tenant_ref)
    except CommerceError as e:
        raise click.ClickException(e.message)

    email = email.strip().lower()
    if db.session.query(User).filter_by(tenant_id=tenant.id, email=email).first():
        raise click.ClickException(f"User '{email}' already exists in tenant {tenant.slug}")

    if role == ROLE_CUSTOMER:
        access_level = None

    user = User(
        tenant_id=tenant.id,
        email=email,
        first_name=first_name,
        last_name=last_name,
        role=role,
        access_level=access_level,
    )
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user: {email} (ID: {user.id}, role: {role})")


@click.group('sessions')
def sessions_group():
    """Bearer session tokens."""


@sessions_group.command('issue')
@click.option('--tenant', 'tenant_ref', required=True, help='Tenant id or slug')
@click.option('--email', required=True)
@with_appcontext
def issue_session(tenant_ref, email):
    try:
        tenant = tenant_service.resolve_tenant(tenant_ref)
    except CommerceError as e:
        raise click.ClickException(e.message)

    user = db.session.query(User).filter_by(tenant_id=tenant.id, email=email.strip().lower()).first()
    if not user:
        raise click.ClickException(f"User '{email}' not found in tenant {tenant.slug}")

    try:
        session, token = session_service.create_session(user.id)
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Session {session.id} expires at {session.expires_at.isoformat()}Z")
    click.echo(token)


@sessions_group.command('revoke')
@click.argument('token')
@with_appcontext
def revoke_session(token):
    if session_service.revoke_session(token, reason="Revoked from CLI"):
        click.echo("PASS Session revoked")
    else:
        click.echo("WARN  No active session for that token")


@click.group('notifications')
def notifications_group():
    """Notification queue worker and inspection."""


@notifications_group.command('work')
@click.option('--once', is_flag=True, help='Process one batch and exit')
@click.option('--interval', default=5.0, show_default=True, help='Seconds between polls')
@click.option('--batch', default=20, show_default=True, help='Jobs claimed per poll')
@with_appcontext
def work_notifications(once, interval, batch):
    transport = notification_service.build_transport(current_app.config)
    dispatcher = notification_service.NotificationDispatcher(
        transport,
        store_name=current_app.config.get("STORE_NAME", "Shop with Seye"),
    )
    if transport is None:
        click.echo("WARN  SMTP not configured; notifications will be logged instead of sent")

    click.echo("START Notification worker running" + (" (single batch)" if once else ""))
    try:
        while True:
            summary = dispatcher.run_pending(limit=batch)
            if summary.claimed:
                current_app.logger.info("Notification batch: %s", summary.to_dict())
            if once:
                click.echo(f"DONE {summary.to_dict()}")
                return
            db.session.remove()
            time.sleep(interval)
    except KeyboardInterrupt:
        click.echo("\nSTOP Notification worker stopped")


@notifications_group.command('list')
@click.option('--status', type=click.Choice([JOB_STATUS_QUEUED, JOB_STATUS_PROCESSING, JOB_STATUS_COMPLETED, JOB_STATUS_FAILED]), default=None)
@click.option('--limit', default=50, show_default=True)
@with_appcontext
def list_notifications(status, limit):
    jobs = notification_service.list_jobs(status=status, limit=limit)
    if not jobs:
        click.echo("No notification jobs found")
        return
    for job in jobs:
        line = f"{job.id:>6}  {job.kind:<15} {job.status:<10} attempts={job.attempts}/{job.max_attempts}"
        if job.last_error:
            line += f"  last_error={job.last_error[:80]}"
        click.echo(line)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(users_group)
    app.cli.add_command(sessions_group)
    app.cli.add_command(notifications_group)
