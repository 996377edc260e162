"""Rich table and panel formatters for terminal UI."""

from rich.panel import Panel
from rich.table import Table
from rich.text import Text

STATUS_STYLES = {
    "STERILE": "green",
    "COMPLETED": "green",
    "PAID": "green",
    "QUARANTINED": "yellow",
    "IN_PROGRESS": "yellow",
    "PARTIAL": "yellow",
    "DUE_SOON": "yellow",
    "FAILED": "red",
    "RECALLED": "red",
    "COMPROMISED": "red",
    "EXPIRED": "red",
    "OVERDUE": "red",
}


def status_text(status: str | None) -> Text:
    if not status:
        return Text("-")
    return Text(status, style=STATUS_STYLES.get(status, ""))


def format_cycles_table(cycles: list) -> Table:
    """Format sterilization cycles as a Rich table.

    Args:
        cycles: List of SterilizationCycle objects

    Returns:
        Rich Table ready for display
    """
    table = Table(title="Sterilization Cycles")
    table.add_column("Number", style="cyan")
    table.add_column("Type")
    table.add_column("Sterilizer")
    table.add_column("Status")
    table.add_column("BI", justify="center")
    table.add_column("Started", style="dim")

    for cycle in cycles:
        bi = {True: "pass", False: "FAIL"}.get(cycle.biological_pass, "-")
        table.add_row(
            cycle.cycle_number,
            cycle.get_cycle_type_display(),
            cycle.sterilizer.name if cycle.sterilizer else "-",
            status_text(cycle.status),
            bi,
            cycle.start_time.strftime("%Y-%m-%d %H:%M"),
        )

    return table


def format_packages_table(packages: list, title: str = "Instrument Packages") -> Table:
    """Format instrument packages as a Rich table."""
    table = Table(title=title)
    table.add_column("Number", style="cyan")
    table.add_column("Type")
    table.add_column("Cycle")
    table.add_column("Status")
    table.add_column("Sterilized", style="dim")
    table.add_column("Expires")

    for package in packages:
        table.add_row(
            package.package_number,
            package.get_package_type_display(),
            package.cycle.cycle_number,
            status_text(package.status),
            package.sterilized_date.isoformat(),
            package.expiration_date.isoformat(),
        )

    return table


def format_lookup_panel(result: dict) -> Panel:
    """Format a QR lookup result as a Rich panel."""
    package, cycle = result["package"], result["cycle"]
    lines = []
    if package is not None:
        lines.append(f"[bold]Package:[/bold] {package.package_number} ({package.get_package_type_display()})")
        lines.append(f"[bold]Status:[/bold] {package.status}")
        if package.instrument_names:
            lines.append(f"[bold]Instruments:[/bold] {', '.join(package.instrument_names)}")
    if cycle is not None:
        lines.append(f"[bold]Cycle:[/bold] {cycle.cycle_number} ({cycle.status})")
        lines.append(f"[bold]Packages in cycle:[/bold] {len(result['packages'])}")
    else:
        lines.append("[yellow]Cycle not found in this clinic[/yellow]")

    days = result["days_until_expiration"]
    if result["is_still_sterile"]:
        lines.append(f"[green]Sterile, expires in {days} day(s)[/green]")
    else:
        lines.append(f"[red]Expired {abs(days)} day(s) ago[/red]")

    return Panel("\n".join(lines), title="QR Lookup", expand=False)


def format_validations_table(rows: list[dict]) -> Table:
    """Format due_validations() rows as a Rich table."""
    table = Table(title="Validations Due")
    table.add_column("Sterilizer", style="cyan")
    table.add_column("Type")
    table.add_column("Next Due")
    table.add_column("Days", justify="right")
    table.add_column("Status")

    for row in rows:
        schedule = row["schedule"]
        table.add_row(
            schedule.sterilizer.name,
            schedule.get_validation_type_display(),
            schedule.next_due.isoformat(),
            str(row["days_until_due"]),
            status_text(row["status"]),
        )

    return table


def format_accounts_table(accounts: list) -> Table:
    """Format patient accounts as a Rich table."""
    table = Table(title="Patient Accounts")
    table.add_column("Number", style="cyan")
    table.add_column("Patient")
    table.add_column("Status")
    table.add_column("Balance", justify="right")
    table.add_column("Credit", justify="right")
    table.add_column("90+", justify="right", style="red")

    for account in accounts:
        table.add_row(
            account.account_number,
            account.patient.full_name,
            status_text(account.status),
            f"{account.current_balance:,.2f}",
            f"{account.credit_balance:,.2f}",
            f"{account.aging_90 + account.aging_120:,.2f}",
        )

    return table


def format_aging_table(report: dict) -> Table:
    """Format aging_report() output as a Rich table with a total row."""
    table = Table(title=f"A/R Aging as of {report['as_of'].isoformat()}")
    table.add_column("Bucket", style="cyan")
    table.add_column("Invoices", justify="right")
    table.add_column("Amount", justify="right")

    for bucket in report["buckets"].values():
        table.add_row(bucket["label"], str(bucket["count"]), f"{bucket['amount']:,.2f}")

    table.add_section()
    table.add_row(
        Text("Total", style="bold"),
        str(sum(b["count"] for b in report["buckets"].values())),
        Text(f"{report['total']:,.2f}", style="bold"),
    )
    return table
