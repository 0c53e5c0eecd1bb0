import json
from decimal import Decimal

import click
from flask.cli import with_appcontext
from sqlalchemy import func

from kitstore.errors import KitStoreError
from kitstore.extensions import db
from kitstore.models import User
from kitstore.services.billing import create_kit_price
from kitstore.services.catalog import create_kit, list_kits, parse_price, upsert_kit
from kitstore.services.entitlements import list_entitlements


def _load_json(path):
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except OSError as exc:
        raise click.ClickException(f"Cannot read {path}: {exc}") from exc
    except ValueError as exc:
        raise click.ClickException(f"{path} is not valid JSON: {exc}") from exc


@click.group()
def kits():
    """Catalog management."""


@kits.command("create")
@click.option("--name", required=True)
@click.option("--price", required=True, help="Display price, e.g. 29.99")
@click.option("--stripe-price-id", default=None, help="Existing Stripe Price id")
@click.option("--create-stripe-price", is_flag=True, default=False,
              help="Create a Stripe Product + Price from --name/--price")
@click.option("--id", "kit_id", default=None, help="Stable kit id (defaults to a generated one)")
@click.option("--category", default=None)
@click.option("--description", default=None)
@click.option("--image-url", default=None)
@click.option("--assets", "assets_file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="JSON file with a list of {id, name, type, description}")
@with_appcontext
def kits_create(name, price, stripe_price_id, create_stripe_price, kit_id, category,
                description, image_url, assets_file):
    if bool(stripe_price_id) == bool(create_stripe_price):
        raise click.ClickException("Pass exactly one of --stripe-price-id or --create-stripe-price")

    assets = _load_json(assets_file) if assets_file else []
    if not isinstance(assets, list):
        raise click.ClickException("--assets file must hold a JSON list")

    try:
        amount = parse_price(price)
        if create_stripe_price:
            stripe_price_id = create_kit_price(
                name=name,
                description=description,
                unit_amount_cents=int(amount * Decimal(100)),
            )
            click.echo(f"Created Stripe price {stripe_price_id}")
        kit = create_kit(
            kit_id=kit_id,
            name=name,
            price=amount,
            stripe_price_id=stripe_price_id,
            description=description,
            category=category,
            image_url=image_url,
            assets=assets,
        )
    except KitStoreError as exc:
        raise click.ClickException(exc.detail or exc.message) from exc

    click.echo(f"Kit created id={kit.id} price={kit.price} stripe_price_id={kit.stripe_price_id}")


@kits.command("seed")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def kits_seed(path):
    """Create or refresh kits from a JSON list (idempotent)."""
    records = _load_json(path)
    if not isinstance(records, list):
        raise click.ClickException("Seed file must hold a JSON list of kits")

    created = updated = 0
    for record in records:
        try:
            kit, was_created = upsert_kit(record)
        except KitStoreError as exc:
            raise click.ClickException(f"{record.get('id', '?')}: {exc.message}") from exc
        if was_created:
            created += 1
        else:
            updated += 1
        click.echo(f"{'created' if was_created else 'updated'} {kit.id}")

    click.echo(f"Seed complete: created={created} updated={updated}")


@kits.command("list")
@with_appcontext
def kits_list():
    try:
        rows = list_kits()
    except KitStoreError as exc:
        raise click.ClickException(exc.message) from exc
    if not rows:
        click.echo("No kits")
        return
    for kit in rows:
        click.echo(f"{kit.id}\t{kit.name}\t{kit.price}\t{kit.stripe_price_id}\tassets={len(kit.assets)}")


@click.group()
def entitlements():
    """Ownership lookups."""


@entitlements.command("list")
@click.option("--user-id", required=True)
@with_appcontext
def entitlements_list(user_id):
    try:
        rows = list_entitlements(user_id)
    except KitStoreError as exc:
        raise click.ClickException(exc.message) from exc
    if not rows:
        click.echo(f"No entitlements for {user_id}")
        return
    for ent in rows:
        click.echo(f"{ent.kit_id}\t{ent.purchased_at.isoformat()}\t{ent.stripe_session_id or '-'}")


@click.group()
def users():
    """User management."""


@users.command("create")
@click.option("--email", required=True)
@click.option("--password", required=True)
@with_appcontext
def users_create(email, password):
    email = email.strip().lower()
    exists = db.session.execute(
        db.select(User.id).where(func.lower(User.email) == email)
    ).first()
    if exists:
        raise click.ClickException("User already exists")

    user = User(email=email, is_active=True)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    click.echo(f"User created id={user.id} email={user.email}")


def register_cli(app):
    app.cli.add_command(kits)
    app.cli.add_command(entitlements)
    app.cli.add_command(users)
