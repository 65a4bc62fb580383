# utils.py
import logging

import pandas as pd

from database import Database
from errors import InvalidInput
from pricing import ZERO, to_decimal

logger = logging.getLogger("pos_checkout.utils")

REQUIRED_COLUMNS = ("barcode", "name", "unit_price", "quantity_in_stock")


def _whole_number(row, column):
    try:
        return int(row[column])
    except (TypeError, ValueError):
        raise InvalidInput(f"{column} must be a whole number for {row['barcode']}, "
                           f"got {row[column]!r}")


def _clean_row(row):
    """Validate one catalog row before it reaches the database."""
    price = to_decimal(row['unit_price'], "unit_price")
    if price < ZERO:
        raise InvalidInput(f"Negative price for {row['barcode']}")
    qty = _whole_number(row, 'quantity_in_stock')
    if qty < 0:
        raise InvalidInput(f"Negative stock for {row['barcode']}")
    min_level = row.get('min_stock_level')
    min_level = 10 if min_level is None or pd.isna(min_level) \
        else _whole_number(row, 'min_stock_level')
    return str(row['barcode']), str(row['name']), price, qty, min_level


def import_products_csv(db: Database, file_path: str):
    """
    Read CSV with columns barcode,name,unit_price,quantity_in_stock
    (optionally min_stock_level) and upsert into the products table.
    Returns the number of rows imported.
    """
    # keep prices as text so they reach Decimal without float rounding
    df = pd.read_csv(file_path, dtype={'barcode': str, 'unit_price': str})
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise InvalidInput(f"Missing columns in {file_path}: {', '.join(missing)}")

    for _, row in df.iterrows():
        barcode, name, price, qty, min_level = _clean_row(row)
        existing = db.get_product_by_barcode(barcode)
        if existing:
            db.update_product(existing['id'], name, price, qty)
        else:
            db.add_product(barcode, name, price, qty, min_level)
    logger.info(f"Imported {len(df)} product(s) from {file_path}")
    return len(df)
