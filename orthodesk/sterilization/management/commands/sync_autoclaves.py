"""Management command to import new cycles from every enabled autoclave."""

from django.core.management.base import BaseCommand

from orthodesk.sterilization.exceptions import AutoclaveError
from orthodesk.sterilization.models import AutoclaveIntegration
from orthodesk.sterilization.services import sync_autoclave


class Command(BaseCommand):
    help = 'Fetch and import new cycles from enabled autoclave integrations'

    def add_arguments(self, parser):
        parser.add_argument('--clinic', help='Limit to one clinic (slug)')
        parser.add_argument('--year', type=int, help='Only cycles started in this year')
        parser.add_argument('--month', type=int, help='Only cycles started in this month')

    def handle(self, *args, **options):
        autoclaves = AutoclaveIntegration.objects.filter(enabled=True).select_related('clinic', 'sterilizer')
        if options['clinic']:
            autoclaves = autoclaves.filter(clinic__slug=options['clinic'])

        failures = 0
        for autoclave in autoclaves:
            try:
                result = sync_autoclave(autoclave, year=options['year'], month=options['month'])
            except AutoclaveError as e:
                failures += 1
                self.stderr.write(self.style.ERROR(f'{autoclave.name}: {e.message}'))
                continue
            self.stdout.write(
                f"{autoclave.name}: imported {result['imported']}, "
                f"skipped {result['skipped']}, errors {len(result['errors'])}"
            )

        if failures:
            self.stdout.write(self.style.WARNING(f'{failures} autoclave(s) could not be synced'))
        else:
            self.stdout.write(self.style.SUCCESS('Autoclave sync complete'))
