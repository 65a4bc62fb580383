# database.py
import logging
import sqlite3
import threading
from datetime import datetime
from decimal import Decimal

from errors import (
    InsufficientStock,
    PersistenceFailure,
    ProductNotFound,
    SequenceGenerationFailed,
)
from models import Product, Sale

logger = logging.getLogger("pos_checkout.database")

# Money columns are TEXT so amounts round-trip as exact Decimals.
sqlite3.register_adapter(Decimal, str)

TABLES = ("products", "sales", "sale_items", "stock_movements", "sale_sequence")


class Database:
    """
    SQLite store for the checkout core. One instance serves as the
    ProductCatalog, the SequenceGenerator and the Ledger.
    Separate instances opened on the same file serialize their writes
    through BEGIN IMMEDIATE transactions; threads sharing one instance
    share its connection and take turns through an instance lock.
    """
    def __init__(self, db_name: str = "pos.db", sale_number_prefix: str = "INV",
                 timeout: float = 30.0):
        self.db_name = db_name
        self.sale_number_prefix = sale_number_prefix
        self.conn = sqlite3.connect(db_name, timeout=timeout, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._create_tables()

    def _create_tables(self):
        cur = self.conn.cursor()
        cur.execute("""
        CREATE TABLE IF NOT EXISTS products (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            barcode TEXT UNIQUE,
            name TEXT NOT NULL,
            unit_price TEXT NOT NULL,
            quantity_in_stock INTEGER NOT NULL CHECK (quantity_in_stock >= 0),
            min_stock_level INTEGER NOT NULL DEFAULT 10
        )
        """)
        cur.execute("""
        CREATE TABLE IF NOT EXISTS sales (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            sale_number TEXT NOT NULL UNIQUE,
            customer_name TEXT,
            subtotal TEXT NOT NULL,
            tax_amount TEXT NOT NULL,
            total_amount TEXT NOT NULL,
            payment_method TEXT NOT NULL,
            payment_received TEXT NOT NULL,
            change_amount TEXT NOT NULL,
            notes TEXT,
            created_by TEXT,
            created_at TEXT NOT NULL
        )
        """)
        cur.execute("""
        CREATE TABLE IF NOT EXISTS sale_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            sale_id INTEGER NOT NULL,
            product_id INTEGER NOT NULL,
            quantity INTEGER NOT NULL CHECK (quantity > 0),
            unit_price TEXT NOT NULL,
            subtotal TEXT NOT NULL,
            FOREIGN KEY(sale_id) REFERENCES sales(id) ON DELETE CASCADE,
            FOREIGN KEY(product_id) REFERENCES products(id)
        )
        """)
        cur.execute("""
        CREATE TABLE IF NOT EXISTS stock_movements (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            product_id INTEGER NOT NULL,
            transaction_type TEXT NOT NULL,
            quantity INTEGER NOT NULL CHECK (quantity > 0),
            reference_number TEXT NOT NULL,
            notes TEXT,
            created_by TEXT,
            created_at TEXT NOT NULL,
            FOREIGN KEY(product_id) REFERENCES products(id)
        )
        """)
        cur.execute("""
        CREATE TABLE IF NOT EXISTS sale_sequence (
            name TEXT PRIMARY KEY,
            value INTEGER NOT NULL
        )
        """)
        self.conn.commit()

    def close(self):
        with self._lock:
            self.conn.close()

    # Catalog operations
    def add_product(self, barcode: str, name: str, price, qty: int, min_stock_level: int = 10):
        """Insert a new product; barcode must be unique. Returns the new id."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute("""
            INSERT INTO products (barcode, name, unit_price, quantity_in_stock, min_stock_level)
            VALUES (?, ?, ?, ?, ?)
            """, (barcode, name, Decimal(str(price)), qty, min_stock_level))
            self.conn.commit()
            return cur.lastrowid

    def update_product(self, product_id: int, name: str, price, qty: int):
        """Update product details."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute("""
            UPDATE products
            SET name = ?, unit_price = ?, quantity_in_stock = ?
            WHERE id = ?
            """, (name, Decimal(str(price)), qty, product_id))
            self.conn.commit()

    def get_product_by_barcode(self, barcode: str):
        """Fetch a product row by barcode."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute("SELECT * FROM products WHERE barcode = ?", (barcode,))
            return cur.fetchone()

    def lookup(self, product_id) -> Product:
        """ProductCatalog contract: current price and stock for one product."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute("SELECT * FROM products WHERE id = ?", (product_id,))
            row = cur.fetchone()
        if row is None:
            raise ProductNotFound(product_id)
        return Product.from_row(row)

    def list_inventory(self):
        """Return all products as list of dicts."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute("SELECT * FROM products ORDER BY id")
            return [dict(row) for row in cur.fetchall()]

    def get_low_stock_products(self, threshold: int = None):
        """
        Products at or below their own min_stock_level, or below
        `threshold` when one is given.
        """
        with self._lock:
            cur = self.conn.cursor()
            if threshold is None:
                cur.execute("""
                SELECT * FROM products
                WHERE quantity_in_stock <= min_stock_level
                ORDER BY quantity_in_stock ASC
                """)
            else:
                cur.execute("""
                SELECT * FROM products
                WHERE quantity_in_stock <= ?
                ORDER BY quantity_in_stock ASC
                """, (threshold,))
            rows = cur.fetchall()
        return [Product.from_row(row) for row in rows]

    # Sale numbering
    def next_sale_number(self) -> str:
        """
        SequenceGenerator contract. The counter is bumped inside an
        immediate transaction, so concurrent connections never share a value.
        """
        with self._lock:
            cur = self.conn.cursor()
            try:
                cur.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise SequenceGenerationFailed(f"Could not generate sale number: {exc}") from exc
            try:
                cur.execute("INSERT OR IGNORE INTO sale_sequence (name, value) VALUES ('sale', 0)")
                cur.execute("UPDATE sale_sequence SET value = value + 1 WHERE name = 'sale'")
                cur.execute("SELECT value FROM sale_sequence WHERE name = 'sale'")
                value = cur.fetchone()[0]
                self.conn.commit()
            except sqlite3.Error as exc:
                self.conn.rollback()
                raise SequenceGenerationFailed(f"Could not generate sale number: {exc}") from exc
        return f"{self.sale_number_prefix}-{datetime.now():%Y%m%d}-{value:05d}"

    # Ledger operations
    def write_sale_atomic(self, sale: Sale, items: list, movements: list, decrements: list) -> Sale:
        """
        Ledger contract: stock decrements, sale header, line items and
        stock movements in one transaction. Either everything is written
        or nothing is.
        decrements: list of (product_id, quantity)
        """
        with self._lock:
            cur = self.conn.cursor()
            try:
                cur.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise PersistenceFailure(f"Could not start sale transaction: {exc}") from exc

            try:
                self._decrement_stock(cur, decrements)
                sale_id = self._insert_sale(cur, sale)
                self._insert_sale_items(cur, sale_id, items)
                self._insert_stock_movements(cur, movements)
                self.conn.commit()
            except (InsufficientStock, ProductNotFound):
                self.conn.rollback()
                raise
            except sqlite3.Error as exc:
                self.conn.rollback()
                logger.error(f"Sale {sale.sale_number} rolled back: {exc}")
                raise PersistenceFailure(f"Failed to record sale {sale.sale_number}: {exc}") from exc
            except Exception:
                self.conn.rollback()
                raise

        sale.id = sale_id
        for it in items:
            it.sale_id = sale_id
        return sale
    def _decrement_stock(self, cur, decrements):
        for product_id, qty in decrements:
            cur.execute("""
            UPDATE products
            SET quantity_in_stock = quantity_in_stock - ?
            WHERE id = ? AND quantity_in_stock >= ?
            """, (qty, product_id, qty))
            if cur.rowcount == 1:
                continue
            cur.execute("SELECT name, quantity_in_stock FROM products WHERE id = ?", (product_id,))
            row = cur.fetchone()
            if row is None:
                raise ProductNotFound(product_id)
            raise InsufficientStock(product_id, qty, row['quantity_in_stock'], row['name'])

    def _insert_sale(self, cur, sale: Sale) -> int:
        cur.execute("""
        INSERT INTO sales (sale_number, customer_name, subtotal, tax_amount, total_amount,
                           payment_method, payment_received, change_amount, notes,
                           created_by, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (sale.sale_number, sale.customer_name, sale.subtotal, sale.tax_amount,
              sale.total_amount, sale.payment_method, sale.payment_received,
              sale.change_amount, sale.notes, sale.created_by, sale.created_at))
        return cur.lastrowid

    def _insert_sale_items(self, cur, sale_id: int, items: list):
        cur.executemany("""
        INSERT INTO sale_items (sale_id, product_id, quantity, unit_price, subtotal)
        VALUES (?, ?, ?, ?, ?)
        """, [(sale_id, it.product_id, it.quantity, it.unit_price, it.subtotal) for it in items])

    def _insert_stock_movements(self, cur, movements: list):
        cur.executemany("""
        INSERT INTO stock_movements (product_id, transaction_type, quantity, reference_number,
                                     notes, created_by, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """, [(mv.product_id, mv.type, mv.quantity, mv.reference_number, mv.notes,
               mv.created_by, mv.created_at) for mv in movements])

    def purge_sale(self, sale_number: str) -> int:
        """
        Compensating delete for a failed commit: removes the sale, its
        items and its movements. Returns the number of records removed.

        Stock is restored only from the outbound movements recorded under
        the sale number. A decrement that was applied without its movement
        is not restored here; with native rollback that state cannot be
        committed, since decrements and movements share one transaction.
        """
        with self._lock:
            cur = self.conn.cursor()
            try:
                cur.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise PersistenceFailure(f"Failed to purge sale {sale_number}: {exc}") from exc
            try:
                cur.execute("""
                SELECT product_id, quantity FROM stock_movements
                WHERE reference_number = ? AND transaction_type = 'outbound'
                """, (sale_number,))
                movements = cur.fetchall()
                for mv in movements:
                    cur.execute("""
                    UPDATE products SET quantity_in_stock = quantity_in_stock + ?
                    WHERE id = ?
                    """, (mv['quantity'], mv['product_id']))
                cur.execute("DELETE FROM stock_movements WHERE reference_number = ?", (sale_number,))
                removed = cur.rowcount
                cur.execute("""
                DELETE FROM sale_items
                WHERE sale_id IN (SELECT id FROM sales WHERE sale_number = ?)
                """, (sale_number,))
                removed += cur.rowcount
                cur.execute("DELETE FROM sales WHERE sale_number = ?", (sale_number,))
                removed += cur.rowcount
                self.conn.commit()
            except sqlite3.Error as exc:
                self.conn.rollback()
                raise PersistenceFailure(f"Failed to purge sale {sale_number}: {exc}") from exc
        if removed:
            logger.warning(f"Compensation removed {removed} record(s) for sale {sale_number}")
        return removed

    # Read helpers
    def get_sale_details(self, sale_number: str):
        """Sale header with its items and stock movements, or None."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute("SELECT * FROM sales WHERE sale_number = ?", (sale_number,))
            sale = cur.fetchone()
            if not sale:
                return None

            cur.execute("""
            SELECT si.*, p.name
            FROM sale_items si
            JOIN products p ON si.product_id = p.id
            WHERE si.sale_id = ?
            ORDER BY si.id
            """, (sale['id'],))
            items = [dict(row) for row in cur.fetchall()]

            cur.execute("""
            SELECT * FROM stock_movements WHERE reference_number = ? ORDER BY id
            """, (sale_number,))
            movements = [dict(row) for row in cur.fetchall()]

        return {
            'sale': Sale.from_row(sale),
            'items': items,
            'movements': movements,
        }

    def count_rows(self, table: str) -> int:
        if table not in TABLES:
            raise ValueError(f"Unknown table: {table}")
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(f"SELECT COUNT(*) FROM {table}")
            return cur.fetchone()[0]
