"""
Utility functions: CSV loading, money rounding, reference number generation.
"""
import csv
import uuid
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any

CENTS = Decimal("0.01")


def load_csv(path: Path, required: bool = True) -> list[dict[str, Any]]:
    """
    Load a CSV file and return list of row dicts.
    Returns [] if file missing and not required.
    """
    if not path.exists():
        if required:
            raise FileNotFoundError(f"Required data file not found: {path}")
        return []
    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        return list(reader)


def to_money(value: Any) -> Decimal:
    """Coerce to Decimal rounded to cents (half-up)."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def generate_reference_number() -> str:
    """Generate a unique human-facing prescription reference."""
    return f"RX-{uuid.uuid4().hex[:10].upper()}"
