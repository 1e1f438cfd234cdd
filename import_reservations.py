#!/usr/bin/env python3
"""
Reservation Boss - Bulk Reservation Import
==========================================
Loads a JSON export (array of {email, date, spot, createdAt?}) into the
database in one atomic batch.

Usage:
    python import_reservations.py reservations.json
"""

import argparse
import sys
from pathlib import Path
from typing import Dict, List

import pandas as pd

from config import get_settings
from database import init_db
from errors import BookingError
from logging_config import get_logger
from services import ReservationService

logger = get_logger(__name__)

REQUIRED_COLUMNS = ("email", "date", "spot")


def load_records(path: Path) -> List[Dict]:
    """Reads the export, keeping dates as plain strings."""
    df = pd.read_json(path, orient="records", dtype=False, convert_dates=False)
    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"Missing columns in {path}: {', '.join(missing)}")

    df = df.dropna(subset=list(REQUIRED_COLUMNS))
    df = df.astype({"date": str, "spot": str})
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Import reservations from a JSON export")
    parser.add_argument("path", type=Path, help="JSON file with an array of reservations")
    args = parser.parse_args(argv)

    if not args.path.exists():
        logger.error(f"File not found: {args.path}")
        return 1

    init_db()
    records = load_records(args.path)
    service = ReservationService(get_settings())

    try:
        imported = service.bulk_import(records)
    except BookingError as e:
        logger.error(f"Import aborted: {e.message}")
        return 1

    logger.info(f"Data successfully imported ({imported} reservations from {args.path})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
