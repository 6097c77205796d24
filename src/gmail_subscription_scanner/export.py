"""Export stored subscriptions to CSV or JSON."""

import csv
import json

from .models import SubscriptionRecord

_FIELDS = [
    "provider",
    "price",
    "frequency",
    "type",
    "last_detected_date",
    "created_at",
    "updated_at",
]


def _to_row(record: SubscriptionRecord) -> dict:
    return {
        "provider": record.provider,
        "price": str(record.price) if record.price is not None else None,
        "frequency": record.frequency,
        "type": record.type,
        "last_detected_date": record.last_detected_date,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }


def export_subscriptions(subscriptions: list[SubscriptionRecord], format: str, output_path: str) -> None:
    """Export subscriptions to a file.

    Args:
        subscriptions: The records to export.
        format: Output format, either 'csv' or 'json'.
        output_path: Path to write the output file.
    """
    rows = [_to_row(r) for r in sorted(subscriptions, key=lambda r: r.provider)]

    if format == "csv":
        with open(output_path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=_FIELDS)
            writer.writeheader()
            for row in rows:
                writer.writerow({k: "" if v is None else v for k, v in row.items()})
    elif format == "json":
        with open(output_path, "w") as f:
            json.dump(rows, f, indent=2)

    print(f"Results saved to {output_path}")
