# storefront/cli.py
import click
from flask_jwt_extended import create_access_token
from .extensions import db
from .model import User
from .services.report_service import sales_report
from .services.wallet_service import reconcile_balance, recompute_balance

@click.command("create-admin")
@click.option("--email", required=True)
@click.option("--name", required=True)
def create_admin(email, name):
    email = email.strip().lower()
    if User.query.filter_by(email=email).first():
        click.echo("Email already exists"); return
    u = User(email=email, name=name, role="admin")
    db.session.add(u); db.session.commit()
    click.echo(f"Admin created: {u.id} {u.email}")

@click.command("issue-token")
@click.option("--email", required=True)
def issue_token(email):
    """Print an access token for a user (login lives outside this service)."""
    u = User.query.filter_by(email=email.strip().lower()).first()
    if not u:
        raise click.ClickException("No such user")
    click.echo(create_access_token(identity=str(u.id)))

@click.command("reconcile-wallets")
@click.option("--dry-run", is_flag=True, help="Report mismatches without fixing them.")
def reconcile_wallets(dry_run):
    """Recompute every cached wallet balance from the ledger."""
    mismatched = 0
    for u in User.query.order_by(User.id).all():
        if dry_run:
            ledger = recompute_balance(u.id)
            if ledger != u.wallet:
                mismatched += 1
                click.echo(f"user {u.id}: cached {u.wallet} != ledger {ledger}")
            continue
        res = reconcile_balance(u.id)
        if res.data["fixed"]:
            mismatched += 1
            click.echo(f"user {u.id}: cached {res.data['cached']} -> {res.data['ledger']}")
    click.echo(f"{mismatched} mismatched wallet(s){' (not fixed)' if dry_run else ''}")

@click.command("export-sales-report")
@click.option("--filter-type", "filter_type", default="monthly",
              type=click.Choice(["daily", "weekly", "monthly", "yearly", "custom"]))
@click.option("--start", default=None, help="YYYY-MM-DD, custom only")
@click.option("--end", default=None, help="YYYY-MM-DD, custom only")
@click.option("--output", "-o", type=click.Path(dir_okay=False, writable=True), default=None)
def export_sales_report(filter_type, start, end, output):
    res = sales_report(filter_type, start=start, end=end)
    if not res.ok:
        raise click.ClickException(res.message)
    csv_text = res.data.to_csv()
    if output:
        with open(output, "w", encoding="utf-8", newline="") as fh:
            fh.write(csv_text)
        click.echo(f"{len(res.data.lines)} line(s) written to {output}")
    else:
        click.echo(csv_text, nl=False)

def register_cli(app):
    app.cli.add_command(create_admin)
    app.cli.add_command(issue_token)
    app.cli.add_command(reconcile_wallets)
    app.cli.add_command(export_sales_report)
