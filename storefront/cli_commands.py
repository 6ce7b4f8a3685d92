"""
Flask CLI commands for storefront administration.

Commands:
- flask init-db: Create the database tables
- flask create-special: Seed a promotional rule
"""

import click
import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from sqlalchemy.exc import SQLAlchemyError

from storefront import database
from storefront.models import Special, SpecialType


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables."""
        database.create_all()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('create-special')
    @click.option('--name', required=True, help='Display name of the promotion')
    @click.option('--type', 'special_type', type=click.Choice(SpecialType.values()),
                  default=SpecialType.DISCOUNT_PERCENTAGE.value, show_default=True)
    @click.option('--value', required=True, help='Percentage or fixed amount; JSON for buy_x_get_y')
    @click.option('--code', default=None, help='Promo code customers type at checkout')
    @click.option('--days', default=30, show_default=True, type=click.IntRange(min=1),
                  help='Days the promotion stays valid, starting now')
    @click.option('--min-purchase', default=None, help='Minimum cart subtotal')
    @click.option('--max-uses', default=None, type=click.IntRange(min=1), help='Redemption limit')
    def create_special(name, special_type, value, code, days, min_purchase, max_uses):
        """Create a promotional rule."""
        db_session = database.get_session()

        try:
            if special_type == SpecialType.BUY_X_GET_Y.value:
                parsed_value = json.loads(value)  # e.g. {"buyQuantity": 2, "getQuantity": 1}
            else:
                parsed_value = float(Decimal(value))
        except (ValueError, InvalidOperation):
            click.echo(click.style(f'Invalid value: {value}', fg='red'))
            return

        try:
            minimum = Decimal(min_purchase) if min_purchase else None
        except InvalidOperation:
            click.echo(click.style(f'Invalid minimum purchase: {min_purchase}', fg='red'))
            return

        if code and db_session.query(Special).filter(Special.code == code.strip().upper()).first():
            click.echo(click.style(f'A special with code {code.upper()} already exists.', fg='red'))
            return

        now = datetime.now(timezone.utc)
        try:
            special = Special(
                name=name,
                type=special_type,
                value=parsed_value,
                code=code,
                start_date=now,
                end_date=now + timedelta(days=days),
                min_purchase=minimum,
                max_uses=max_uses
            )
            db_session.add(special)
            db_session.commit()
        except (ValueError, SQLAlchemyError) as e:
            db_session.rollback()
            click.echo(click.style(f'Could not create special: {e}', fg='red'))
            return

        click.echo(click.style('Special created.', fg='green', bold=True))
        click.echo(f'   ID: {special.id}')
        click.echo(f'   Code: {special.code or "-"}')
        click.echo(f'   Valid until: {special.end_date.isoformat()}')
