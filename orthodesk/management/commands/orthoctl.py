"""Django management command for orthoctl."""

import argparse

import click
from django.core.management.base import BaseCommand, CommandError

from orthodesk.terminal_ui.cli import cli


class Command(BaseCommand):
    help = "Browse sterilization and billing records and run maintenance jobs"

    def add_arguments(self, parser):
        # REMAINDER so options such as --clinic reach click instead of Django
        parser.add_argument("cli_args", nargs=argparse.REMAINDER, metavar="args")

    def handle(self, *args, **options):
        argv = options["cli_args"] or ["--help"]
        try:
            exit_code = cli.main(args=argv, prog_name="orthoctl", standalone_mode=False)
        except click.ClickException as e:
            raise CommandError(e.format_message())
        except click.Abort:
            raise CommandError("Aborted")
        if exit_code:
            raise CommandError(f"orthoctl exited with status {exit_code}")
