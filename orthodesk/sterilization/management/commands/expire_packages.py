"""Management command to expire sterile packages past their expiration date."""

from django.core.management.base import BaseCommand
from django.utils import timezone

from orthodesk.core.models import Clinic
from orthodesk.sterilization.models import InstrumentPackage, PackageStatus
from orthodesk.sterilization.services import expire_packages


class Command(BaseCommand):
    help = 'Mark STERILE packages whose expiration date has arrived as EXPIRED'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clinic',
            help='Limit to one clinic (slug)'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show how many packages would expire without changing them'
        )

    def handle(self, *args, **options):
        clinic = None
        if options['clinic']:
            clinic = Clinic.objects.filter(slug=options['clinic']).first()
            if clinic is None:
                self.stderr.write(self.style.ERROR(f"Unknown clinic '{options['clinic']}'"))
                return

        if options['dry_run']:
            qs = InstrumentPackage.objects.filter(
                status=PackageStatus.STERILE,
                expiration_date__lte=timezone.localdate(),
            )
            if clinic is not None:
                qs = qs.for_clinic(clinic)
            self.stdout.write(f'Would expire {qs.count()} packages')
            return

        count = expire_packages(clinic)
        self.stdout.write(self.style.SUCCESS(f'Expired {count} packages'))
