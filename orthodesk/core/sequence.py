"""Atomic human-readable number generation."""

from django.db import IntegrityError, transaction
from django.utils import timezone

from .models import Sequence


def next_number(clinic, prefix: str, pad_width: int = 5, year: int | None = None) -> str:
    """
    Get the next number for a (clinic, prefix, year) sequence.

    Uses select_for_update() so concurrent requests never receive the
    same value. Numbers are never reused, even if the row they were
    issued for is later deleted.

    Args:
        clinic: Owning clinic
        prefix: Number prefix without dash, e.g. 'INV'
        pad_width: Zero-padding width for the counter
        year: Year component (defaults to the current year)

    Returns:
        Formatted value, e.g. "INV-2026-00001"
    """
    if year is None:
        year = timezone.localdate().year

    with transaction.atomic():
        try:
            seq = Sequence.objects.select_for_update().get(
                clinic=clinic, prefix=prefix, year=year
            )
        except Sequence.DoesNotExist:
            try:
                with transaction.atomic():
                    Sequence.objects.create(
                        clinic=clinic, prefix=prefix, year=year, pad_width=pad_width
                    )
            except IntegrityError:
                # Created concurrently by another request
                pass
            seq = Sequence.objects.select_for_update().get(
                clinic=clinic, prefix=prefix, year=year
            )

        seq.current_value += 1
        seq.save(update_fields=["current_value", "updated_at"])

        return seq.formatted_value
