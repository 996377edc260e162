"""Tests for orthoctl CLI commands."""

from datetime import date

import pytest
from click.testing import CliRunner
from django.core.management import CommandError, call_command, get_commands
from rich.console import Console

from orthodesk.billing import services as billing
from orthodesk.sterilization import services as sterilization
from orthodesk.sterilization.models import CycleStatus, InstrumentPackage, PackageStatus
from orthodesk.terminal_ui import cli as cli_module
from orthodesk.terminal_ui.cli import cli


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    """Render tables wide enough that numbers are never truncated."""
    monkeypatch.setattr(cli_module, "console", Console(width=200))


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def package(started_cycle, admin_user):
    cycle = sterilization.complete_cycle(
        started_cycle, actor=admin_user, status=CycleStatus.COMPLETED, mechanical_pass=True
    )
    return sterilization.create_packages(
        cycle, actor=admin_user, package_type="CASSETTE_FULL", instrument_names=["Bracket tweezers"]
    )[0]


class TestOrthoctlManagementCommand:
    def test_is_discoverable(self):
        assert "orthoctl" in get_commands()

    @pytest.mark.django_db
    def test_passes_options_through(self, clinic, capsys):
        call_command("orthoctl", "list", "quarantine", "--clinic", "main")
        assert "Nothing in quarantine" in capsys.readouterr().out

    @pytest.mark.django_db
    def test_click_errors_become_command_errors(self, clinic):
        with pytest.raises(CommandError, match="Clinic not found: nowhere"):
            call_command("orthoctl", "validations", "--clinic", "nowhere")

    def test_help_lists_groups(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for name in ("list", "lookup", "validations", "aging", "run"):
            assert name in result.output

    def test_list_cycles_options(self, runner):
        result = runner.invoke(cli, ["list", "cycles", "--help"])
        assert result.exit_code == 0
        assert "--clinic" in result.output
        assert "--limit" in result.output


@pytest.mark.django_db
class TestListCommands:
    def test_unknown_clinic(self, runner, clinic):
        result = runner.invoke(cli, ["list", "cycles", "--clinic", "nowhere"])
        assert result.exit_code == 1
        assert "Clinic not found: nowhere" in result.output

    def test_cycles(self, runner, package):
        result = runner.invoke(cli, ["list", "cycles", "--clinic", "main"])
        assert result.exit_code == 0
        assert package.cycle.cycle_number in result.output
        assert "Statim 2000" in result.output

    def test_packages_by_status(self, runner, package):
        result = runner.invoke(cli, ["list", "packages", "--clinic", "main", "--status", "STERILE"])
        assert result.exit_code == 0
        assert package.package_number in result.output

        result = runner.invoke(cli, ["list", "packages", "--clinic", "main", "--status", "USED"])
        assert package.package_number not in result.output

    def test_empty_quarantine(self, runner, package):
        result = runner.invoke(cli, ["list", "quarantine", "--clinic", "main"])
        assert result.exit_code == 0
        assert "Nothing in quarantine" in result.output

    def test_accounts(self, runner, clinic, patient, admin_user):
        account = billing.open_account(clinic, patient, actor=admin_user)
        result = runner.invoke(cli, ["list", "accounts", "--clinic", "main"])
        assert result.exit_code == 0
        assert account.account_number in result.output
        assert "Maria Garcia" in result.output

    @pytest.mark.parametrize("command", ["cycles", "packages", "accounts"])
    def test_unknown_status_is_reported(self, runner, clinic, command):
        result = runner.invoke(cli, ["list", command, "--clinic", "main", "--status", "BOGUS"])
        assert result.exit_code == 1
        assert "Invalid input: status: Select a valid choice. BOGUS" in result.output
        assert result.exception is None or isinstance(result.exception, SystemExit)


@pytest.mark.django_db
class TestLookup:
    def test_package_number(self, runner, package):
        result = runner.invoke(cli, ["lookup", "--clinic", "main", package.package_number])
        assert result.exit_code == 0
        assert package.package_number in result.output
        assert "Bracket tweezers" in result.output
        assert "Sterile, expires in" in result.output

    def test_unrecognised_content(self, runner, clinic):
        result = runner.invoke(cli, ["lookup", "--clinic", "main", "hello there"])
        assert result.exit_code == 1
        assert "Unrecognised sterilization QR content" in result.output


@pytest.mark.django_db
class TestReports:
    def test_no_validations_due(self, runner, clinic):
        result = runner.invoke(cli, ["validations", "--clinic", "main"])
        assert result.exit_code == 0
        assert "No validations due" in result.output

    def test_aging_as_of(self, runner, clinic, patient, admin_user):
        account = billing.open_account(clinic, patient, actor=admin_user)
        billing.create_invoice(
            account,
            actor=admin_user,
            items=[{"description": "Retainer", "unit_price": "150.00"}],
            invoice_date=date(2026, 1, 2),
            due_date=date(2026, 2, 1),
        )
        result = runner.invoke(cli, ["aging", "--clinic", "main", "--as-of", "2026-03-15"])
        assert result.exit_code == 0
        assert "A/R Aging as of 2026-03-15" in result.output
        assert "31-60 Days" in result.output
        assert "150.00" in result.output


@pytest.mark.django_db
class TestRunCommands:
    def test_expire(self, runner, package):
        InstrumentPackage.objects.filter(pk=package.pk).update(
            sterilized_date=date(2020, 1, 1), expiration_date=date(2020, 1, 31)
        )
        result = runner.invoke(cli, ["run", "expire", "--clinic", "main"])
        assert result.exit_code == 0
        assert "Expired 1 package(s)" in result.output
        assert InstrumentPackage.objects.get(pk=package.pk).status == PackageStatus.EXPIRED

    def test_expire_all_clinics(self, runner, clinic):
        result = runner.invoke(cli, ["run", "expire"])
        assert result.exit_code == 0
        assert "Expired 0 package(s)" in result.output

    def test_sync_without_autoclaves(self, runner, clinic):
        result = runner.invoke(cli, ["run", "sync", "--clinic", "main"])
        assert result.exit_code == 0
        assert "No enabled autoclaves" in result.output


@pytest.fixture
def autoclave(clinic, sterilizer):
    from orthodesk.sterilization.models import AutoclaveIntegration

    return AutoclaveIntegration.objects.create(
        clinic=clinic, name="Statclave", ip_address="10.0.0.5", sterilizer=sterilizer
    )


def use_unit(monkeypatch, transport):
    from orthodesk.sterilization.autoclave import AutoclaveClient

    monkeypatch.setattr(
        AutoclaveClient,
        "for_autoclave",
        classmethod(lambda cls, autoclave, **kwargs: cls(autoclave.ip_address, transport=transport)),
    )


@pytest.mark.django_db
class TestMaintenanceCommands:
    def test_expire_packages_dry_run(self, package, capsys):
        InstrumentPackage.objects.filter(pk=package.pk).update(expiration_date=date(2020, 1, 31))
        call_command("expire_packages", "--dry-run")
        assert "Would expire 1 packages" in capsys.readouterr().out
        assert InstrumentPackage.objects.get(pk=package.pk).status == PackageStatus.STERILE

        call_command("expire_packages", "--clinic", "main")
        assert "Expired 1 packages" in capsys.readouterr().out
        assert InstrumentPackage.objects.get(pk=package.pk).status == PackageStatus.EXPIRED

    def test_expire_packages_unknown_clinic(self, clinic, capsys):
        call_command("expire_packages", "--clinic", "nowhere")
        assert "Unknown clinic 'nowhere'" in capsys.readouterr().err

    def test_sync_autoclaves(self, autoclave, monkeypatch, capsys):
        from .test_autoclave import healthy_unit

        use_unit(monkeypatch, healthy_unit())
        call_command("sync_autoclaves", "--clinic", "main")
        out = capsys.readouterr().out
        assert "Statclave: imported" in out
        assert "Autoclave sync complete" in out

    def test_sync_autoclaves_reports_failures(self, autoclave, monkeypatch, capsys):
        from .test_autoclave import mock_unit

        use_unit(monkeypatch, mock_unit({}))
        call_command("sync_autoclaves")
        captured = capsys.readouterr()
        assert "Statclave:" in captured.err
        assert "1 autoclave(s) could not be synced" in captured.out

    def test_orthoctl_sync_reports_failure_inline(self, runner, autoclave, monkeypatch):
        from .test_autoclave import mock_unit

        use_unit(monkeypatch, mock_unit({}))
        result = runner.invoke(cli, ["run", "sync", "--clinic", "main"])
        assert result.exit_code == 0
        assert "Syncing: Statclave" in result.output
        assert "HTTP 404" in result.output
