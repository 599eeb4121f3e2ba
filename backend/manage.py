"""Management commands for the e-library backend."""

from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional

import click

from elibrary.core.security import create_user_token
from elibrary.db.session import SessionLocal, create_tables
from elibrary.repositories.catalog_repo import CatalogRepository
from elibrary.repositories.user_repo import UserRepository

logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


def _parse_price(value: Optional[str], option: str) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        price = Decimal(value)
    except InvalidOperation:
        raise click.BadParameter(f"'{value}' is not a valid amount", param_hint=option)
    if price < 0:
        raise click.BadParameter("amount cannot be negative", param_hint=option)
    return price


@click.group()
def cli() -> None:
    """Entry point for management commands."""


@cli.command("init-db")
def init_db() -> None:
    """Create all tables that do not exist yet."""
    create_tables()
    logging.info("Database tables created.")


@cli.command("create-user")
@click.option("--email", required=True, help="Login email (stored lower-cased).")
@click.option("--name", required=True, help="Display name.")
@click.option(
    "--password",
    prompt=True,
    hide_input=True,
    confirmation_prompt=True,
    help="Password, hashed with bcrypt before storage.",
)
def create_user(email: str, name: str, password: str) -> None:
    """Create a reader account."""
    session = SessionLocal()
    try:
        repo = UserRepository(session)
        if repo.get_by_email(email) is not None:
            raise click.ClickException(f"User with email '{email}' already exists.")
        user = repo.create(email=email, name=name, password=password)
        logging.info("Created user %s (id=%s).", user.email, user.id)
    except click.ClickException:
        raise
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@cli.command("issue-token")
@click.option("--email", required=True, help="Email of an existing user.")
@click.option(
    "--hours",
    type=int,
    default=None,
    help="Token lifetime in hours (defaults to the standard API token lifetime).",
)
def issue_token(email: str, hours: Optional[int]) -> None:
    """Print a bearer token for an existing user."""
    session = SessionLocal()
    try:
        user = UserRepository(session).get_by_email(email)
    finally:
        session.close()

    if user is None:
        raise click.ClickException(f"No user found with email '{email}'.")
    if not user.is_active:
        raise click.ClickException(f"User '{email}' is inactive.")

    expires = timedelta(hours=hours) if hours else None
    click.echo(create_user_token(user.id, user.email, expires_delta=expires))


@cli.command("add-book")
@click.option("--title", required=True)
@click.option("--product-id", required=True, help="Store product id used in receipts.")
@click.option("--price", default=None, help="Actual price, e.g. 4.99.")
@click.option("--discounted-price", default=None)
@click.option("--currency", default="usd", show_default=True)
def add_book(
    title: str,
    product_id: str,
    price: Optional[str],
    discounted_price: Optional[str],
    currency: str,
) -> None:
    """Add a book to the catalog."""
    session = SessionLocal()
    try:
        repo = CatalogRepository(session)
        if repo.get_by_product_id(product_id) is not None:
            raise click.ClickException(f"Product id '{product_id}' already exists.")
        book = repo.add(
            title=title,
            product_id=product_id,
            actual_price=_parse_price(price, "--price"),
            discounted_price=_parse_price(discounted_price, "--discounted-price"),
            currency=currency.lower(),
        )
        logging.info("Added book %s (id=%s, product_id=%s).", book.title, book.id, product_id)
    except click.ClickException:
        raise
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    cli()
