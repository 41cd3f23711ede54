# estimator/cli.py
"""Onboarding commands: ``flask company create`` / ``flask company show``."""

import logging

import click
from flask import current_app

from estimator import db
from estimator.models import Company, User


@click.group("company")
def company_cli() -> None:
    """Company onboarding commands."""


@company_cli.command("create")
@click.argument("name")
@click.option("--owner-email", required=True, help="Email of the first user")
@click.option("--tax-rate", type=click.FloatRange(0, 100), default=0.0, show_default=True)
@click.option("--deposit-percent", type=click.FloatRange(0, 100), default=None,
              help="Defaults to DEFAULT_DEPOSIT_PERCENT")
@click.option("--email", default=None, help="Company contact email")
@click.option("--phone", default=None, help="Company contact phone")
def create_command(name: str, owner_email: str, tax_rate: float, deposit_percent: float | None,
                   email: str | None, phone: str | None) -> None:
    company = create_company(name, owner_email, tax_rate, deposit_percent, email, phone)
    click.echo(f"company {company.id} created")
    click.echo(f"api key: {company.api_key}")


@company_cli.command("show")
@click.argument("company_id", type=int)
def show_command(company_id: int) -> None:
    company = db.session.get(Company, company_id)
    if company is None:
        raise click.ClickException(f"company {company_id} not found")
    for key, value in company.to_dict().items():
        click.echo(f"{key}: {value}")


def create_company(name: str, owner_email: str, tax_rate: float = 0.0,
                   deposit_percent: float | None = None, email: str | None = None,
                   phone: str | None = None) -> Company:
    if deposit_percent is None:
        deposit_percent = current_app.config["DEFAULT_DEPOSIT_PERCENT"]
    company = Company(
        name=name.strip(),
        email=email,
        phone=phone,
        default_tax_rate=tax_rate,
        default_deposit_percent=deposit_percent,
    )
    db.session.add(company)
    db.session.flush()
    db.session.add(User(company_id=company.id, email=owner_email.strip().lower()))
    db.session.commit()
    logging.info("onboarded company %s (%s)", company.id, company.name)
    return company
