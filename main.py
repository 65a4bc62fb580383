# main.py
import os
import sys
import copy
import json
import logging
import argparse

from checkout import PAYMENT_METHODS, SaleCommitService
from database import Database
from errors import CheckoutError
from logger import configure_logger
from models import Cart
from receipt import ReceiptFieldPolicy
from utils import import_products_csv

logger = logging.getLogger("pos_checkout.main")

# Default configuration
DEFAULT_CONFIG = {
    "database": {"name": "pos.db"},
    "tax_rate": 11,
    "discount_rate": 0.08,
    "sale_number_prefix": "INV",
    "currency": "Rp",
    "receipt": {
        "show_amount": True,
        "show_dpp_faktur": False,
        "show_discount": False,
        "show_ppn11": False
    },
    "logging": {
        "level": "INFO",
        "file": "logs/pos.log",
        "max_size": 1048576,
        "backup_count": 3,
        "modules": {}
    }
}


def _merge(defaults, overrides):
    merged = copy.deepcopy(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path="config.json"):
    """Load configuration from JSON file or create default if not exists"""
    if os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                config = json.load(f)
            logger.info(f"Configuration loaded from {config_path}")
            return _merge(DEFAULT_CONFIG, config)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading config: {e}")
            return _merge(DEFAULT_CONFIG, {})

    with open(config_path, 'w') as f:
        json.dump(DEFAULT_CONFIG, f, indent=4)
    logger.info(f"Created default configuration at {config_path}")

    return _merge(DEFAULT_CONFIG, {})


def parse_line_arg(value: str):
    """'12:3' -> (12, 3); a bare id means quantity 1."""
    product_id, _, qty = value.partition(":")
    try:
        product_id, qty = int(product_id), int(qty or 1)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected PRODUCT_ID[:QTY], got {value!r}")
    if qty < 1:
        raise argparse.ArgumentTypeError(f"Quantity must be at least 1, got {value!r}")
    return product_id, qty


def parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description="POS checkout core")
    parser.add_argument("--config", help="Path to configuration file", default="config.json")
    parser.add_argument("--debug", help="Enable debug mode", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import-products", help="Seed the catalog from a CSV file")
    imp.add_argument("file")

    brk = sub.add_parser("breakdown", help="Show the pre-checkout tax breakdown")
    brk.add_argument("lines", nargs="+", type=parse_line_arg, metavar="PRODUCT_ID[:QTY]")
    brk.add_argument("--discount-rate", default=None)

    chk = sub.add_parser("checkout", help="Commit a sale")
    chk.add_argument("lines", nargs="+", type=parse_line_arg, metavar="PRODUCT_ID[:QTY]")
    chk.add_argument("--paid", required=True, help="Payment received")
    chk.add_argument("--method", default="cash", choices=PAYMENT_METHODS)
    chk.add_argument("--customer", default=None)
    chk.add_argument("--bank-details", default=None)
    chk.add_argument("--cashier", default=None)
    chk.add_argument("--discount-rate", default=None)
    return parser.parse_args(argv)


def build_cart(db: Database, lines):
    """Scan each product, then raise it to the requested quantity."""
    cart = Cart(catalog=db)
    for product_id, qty in lines:
        cart.scan(product_id)
        if qty > 1:
            cart.set_quantity(product_id, cart.quantity_of(product_id) + qty - 1)
    return cart


def _print_breakdown(breakdown, policy, currency):
    for line, b in breakdown.lines:
        r = b.rounded()
        print(f"{line.product.name[:20]:20} x{line.quantity:<3} {currency}{r.amount:>14,}")
    print("-" * 44)
    for field, value in breakdown.total.rounded().as_dict().items():
        print(f"{field:12} {currency}{value:>14,}")
    print("-" * 44)
    print("On receipt:")
    for field, value in policy.apply(breakdown.total.rounded()).items():
        print(f"  {field:10} {currency}{value:>14,}")


def run(args, config):
    db = Database(config["database"].get("name", "pos.db"),
                  sale_number_prefix=config.get("sale_number_prefix", "INV"))
    try:
        if args.command == "import-products":
            count = import_products_csv(db, args.file)
            print(f"Imported {count} product(s)")
            return 0

        currency = config.get("currency", "")
        discount_rate = args.discount_rate if args.discount_rate is not None \
            else config.get("discount_rate")
        service = SaleCommitService(db, db, tax_rate=config.get("tax_rate", 11),
                                    discount_rate=discount_rate)
        cart = build_cart(db, args.lines)

        if args.command == "breakdown":
            _print_breakdown(service.preview(cart), ReceiptFieldPolicy.from_config(config),
                             currency)
            return 0

        sale = service.commit(cart, args.paid, payment_method=args.method,
                              customer_name=args.customer, bank_details=args.bank_details,
                              created_by=args.cashier)
        cart.clear()
        print(f"Sale {sale.sale_number}")
        print(f"Total:  {currency}{sale.total_amount:,}")
        print(f"Paid:   {currency}{sale.payment_received:,}")
        print(f"Change: {currency}{sale.change_amount:,}")
        for product in db.get_low_stock_products():
            logger.warning(f"Low stock: {product.name} ({product.stock_quantity} left)")
        return 0
    finally:
        db.close()


def main(argv=None):
    args = parse_arguments(argv)
    config = load_config(args.config)
    if args.debug:
        config["logging"]["level"] = "DEBUG"
    configure_logger(config)
    logger.debug("Debug mode enabled")

    try:
        return run(args, config)
    except CheckoutError as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
