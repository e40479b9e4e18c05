import json

import click
from flask import current_app
from flask.cli import AppGroup, with_appcontext

billing_cli = AppGroup("billing", help="Billing cycle maintenance commands.")


def _services():
    return current_app.extensions["services"]


def _echo(report):
    click.echo(json.dumps(report.to_dict(), indent=2))


@billing_cli.command("sweep-penalties")
@click.option(
    "--kind",
    type=click.Choice(["rent", "utility"]),
    default="rent",
    show_default=True,
    help="Which bills to recompute penalties for.",
)
@with_appcontext
def sweep_penalties_cmd(kind):
    report = _services()["penalty_service"].sweep(kind)
    _echo(report)
    if report.failures:
        raise SystemExit(1)


@billing_cli.command("renew")
@with_appcontext
def renew_cmd():
    _echo(_services()["renewal_service"].run())


@billing_cli.command("verify-payments")
@with_appcontext
def verify_payments_cmd():
    report = _services()["payment_service"].bulk_verify_payments()
    _echo(report)
    if report.failures:
        raise SystemExit(1)


def register_cli(app):
    app.cli.add_command(billing_cli)
