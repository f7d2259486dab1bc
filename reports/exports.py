"""
CSV export of ledger movements, streamed row by row.
"""
import csv

from django.utils import timezone

EXPORT_COLUMNS = ['Date', 'Product', 'Quantity', 'Unit Price', 'Total', 'Actor']


class Echo:
    """File-like object whose write() returns the value instead of storing it."""

    def write(self, value):
        return value


def actor_label(user) -> str:
    return user.get_full_name() or user.get_username()


def movement_row(entry):
    return [
        timezone.localtime(entry.created_at).date().isoformat(),
        entry.product.name,
        entry.quantity,
        entry.unit_price,
        entry.total,
        actor_label(entry.actor),
    ]


def export_movements_csv(movements):
    """
    Yield the CSV export as encoded byte chunks, header first.

    Args:
        movements: Iterable of MovementEntry with product and actor loaded
    """
    writer = csv.writer(Echo())
    yield writer.writerow(EXPORT_COLUMNS).encode('utf-8')
    for entry in movements:
        yield writer.writerow(movement_row(entry)).encode('utf-8')
