"""Click CLI for orthoctl.

Usage:
    python manage.py orthoctl [command] [options]
"""

import click
from rich.console import Console

console = Console()


def _get_clinic(slug):
    from orthodesk.core.models import Clinic

    clinic = Clinic.objects.filter(slug=slug).first()
    if clinic is None:
        raise click.ClickException(f"Clinic not found: {slug}")
    return clinic


clinic_option = click.option("--clinic", "clinic_slug", required=True, help="Clinic slug")


def _list_items(selector, clinic_slug, limit, status):
    """Run a list selector with --limit and --status applied."""
    from orthodesk.core.exceptions import OrthodeskError

    params = {"page_size": limit}
    if status:
        params["status"] = status
    try:
        return selector(_get_clinic(clinic_slug), params)["items"]
    except OrthodeskError as e:
        problems = "; ".join(f"{field}: {' '.join(errors)}" for field, errors in (e.details or {}).items())
        raise click.ClickException(f"{e.message}: {problems}" if problems else e.message)


@click.group()
@click.pass_context
def cli(ctx):
    """Orthodesk Terminal UI.

    Browse sterilization records and patient balances, and run
    maintenance jobs.
    """
    ctx.ensure_object(dict)


@cli.group(name="list")
def list_group():
    """List entities (cycles, packages, quarantine, accounts)."""
    pass


@list_group.command(name="cycles")
@clinic_option
@click.option("--limit", default=50, help="Maximum records to return")
@click.option("--status", help="Filter by status")
def list_cycles(clinic_slug, limit, status):
    """List sterilization cycles, newest first."""
    from orthodesk.sterilization.selectors import list_cycles as get_cycles
    from .formatters import format_cycles_table

    console.print(format_cycles_table(_list_items(get_cycles, clinic_slug, limit, status)))


@list_group.command(name="packages")
@clinic_option
@click.option("--limit", default=50, help="Maximum records to return")
@click.option("--status", help="Filter by status")
def list_packages(clinic_slug, limit, status):
    """List instrument packages."""
    from orthodesk.sterilization.selectors import list_packages as get_packages
    from .formatters import format_packages_table

    console.print(format_packages_table(_list_items(get_packages, clinic_slug, limit, status)))


@list_group.command(name="quarantine")
@clinic_option
def list_quarantine(clinic_slug):
    """List quarantined packages and cycles awaiting a BI result."""
    from orthodesk.sterilization.services import list_quarantine as get_quarantine
    from .formatters import format_cycles_table, format_packages_table

    result = get_quarantine(_get_clinic(clinic_slug))
    if not result["packages"] and not result["pending_cycles"]:
        console.print("[green]Nothing in quarantine[/green]")
        return
    console.print(format_packages_table(result["packages"], title="Quarantined Packages"))
    console.print(format_cycles_table(result["pending_cycles"]))


@list_group.command(name="accounts")
@clinic_option
@click.option("--limit", default=50, help="Maximum records to return")
@click.option("--status", help="Filter by status")
def list_accounts(clinic_slug, limit, status):
    """List patient accounts."""
    from orthodesk.billing.selectors import list_accounts as get_accounts
    from .formatters import format_accounts_table

    console.print(format_accounts_table(_list_items(get_accounts, clinic_slug, limit, status)))


@cli.command()
@clinic_option
@click.argument("content")
def lookup(clinic_slug, content):
    """Look up a scanned QR label or package number."""
    from orthodesk.core.exceptions import OrthodeskError
    from orthodesk.sterilization.services import lookup_by_qr
    from .formatters import format_lookup_panel

    try:
        result = lookup_by_qr(_get_clinic(clinic_slug), content)
    except OrthodeskError as e:
        raise click.ClickException(e.message)
    console.print(format_lookup_panel(result))


@cli.command()
@clinic_option
def validations(clinic_slug):
    """Show overdue and upcoming sterilizer validations."""
    from orthodesk.sterilization.services import due_validations
    from .formatters import format_validations_table

    rows = due_validations(_get_clinic(clinic_slug))
    if not rows:
        console.print("[green]No validations due[/green]")
        return
    console.print(format_validations_table(rows))


@cli.command()
@clinic_option
@click.option("--as-of", type=click.DateTime(formats=["%Y-%m-%d"]), help="Report date (default today)")
def aging(clinic_slug, as_of):
    """Accounts receivable aging report."""
    from orthodesk.billing.services import aging_report
    from .formatters import format_aging_table

    report = aging_report(_get_clinic(clinic_slug), today=as_of.date() if as_of else None)
    console.print(format_aging_table(report))


@cli.group(name="run")
def run_group():
    """Run maintenance jobs."""
    pass


@run_group.command(name="expire")
@click.option("--clinic", "clinic_slug", help="Limit to one clinic (slug)")
def run_expire(clinic_slug):
    """Mark sterile packages past their expiration date EXPIRED."""
    from orthodesk.sterilization.services import expire_packages

    clinic = _get_clinic(clinic_slug) if clinic_slug else None
    count = expire_packages(clinic)
    console.print(f"[green]Expired {count} package(s)[/green]")


@run_group.command(name="sync")
@clinic_option
@click.option("--year", type=int, help="Only cycles started in this year")
@click.option("--month", type=click.IntRange(1, 12), help="Only cycles started in this month")
def run_sync(clinic_slug, year, month):
    """Import new cycles from the clinic's enabled autoclaves."""
    from orthodesk.sterilization.exceptions import AutoclaveError
    from orthodesk.sterilization.models import AutoclaveIntegration
    from orthodesk.sterilization.services import sync_autoclave

    autoclaves = AutoclaveIntegration.objects.for_clinic(_get_clinic(clinic_slug)).filter(enabled=True)
    if not autoclaves.exists():
        console.print("[yellow]No enabled autoclaves[/yellow]")
        return

    for autoclave in autoclaves:
        console.print(f"[cyan]Syncing:[/cyan] {autoclave.name}")
        try:
            result = sync_autoclave(autoclave, year=year, month=month)
        except AutoclaveError as e:
            console.print(f"[red]{autoclave.name}: {e.message}[/red]")
            continue
        console.print(
            f"[green]Imported {result['imported']}[/green], skipped {result['skipped']}, "
            f"errors {len(result['errors'])}"
        )


def main():
    """Entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
