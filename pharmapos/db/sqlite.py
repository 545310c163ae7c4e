from __future__ import annotations

import logging
import os
import sqlite3
import uuid
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pharmapos.config import settings
from pharmapos.services.pricing import CartItem, DiscountSelection, compute_totals, to_decimal

log = logging.getLogger(__name__)


def _connect() -> sqlite3.Connection:
    os.makedirs(os.path.dirname(os.path.abspath(settings.db_path)), exist_ok=True)
    conn = sqlite3.connect(settings.db_path)
    conn.row_factory = sqlite3.Row
    return conn


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _tz_modifier() -> str:
    return f"{settings.tz_offset_hours:+d} hours"


def _money(v: Decimal) -> Decimal:
    return to_decimal(v).quantize(Decimal(1).scaleb(-settings.decimals), rounding=ROUND_HALF_UP)


def init_db() -> None:
    conn = _connect()
    try:
        with open(os.path.join(os.path.dirname(__file__), "schema.sql"), "r", encoding="utf-8") as f:
            conn.executescript(f.read())
        conn.commit()
    finally:
        conn.close()


# ---------------- reference data ----------------

def add_branch(name: str) -> int:
    conn = _connect()
    try:
        conn.execute("INSERT OR IGNORE INTO branches(branch_name) VALUES(?)", (name,))
        conn.commit()
        row = conn.execute("SELECT branch_id FROM branches WHERE branch_name = ?", (name,)).fetchone()
        return int(row["branch_id"])
    finally:
        conn.close()


def add_category(name: str) -> int:
    conn = _connect()
    try:
        conn.execute("INSERT OR IGNORE INTO category(name) VALUES(?)", (name,))
        conn.commit()
        row = conn.execute("SELECT category_id FROM category WHERE name = ?", (name,)).fetchone()
        return int(row["category_id"])
    finally:
        conn.close()


def add_product(
    name: str,
    price: Any,
    brand_name: Optional[str] = None,
    barcode: Optional[str] = None,
    category_id: Optional[int] = None,
    critical: int = 10,
    is_active: bool = True,
) -> int:
    conn = _connect()
    try:
        cur = conn.execute(
            "INSERT INTO products(name, brand_name, barcode, category, price, critical, is_active) "
            "VALUES(?,?,?,?,?,?,?)",
            (name, brand_name, barcode, category_id, str(_money(price)), critical, int(is_active)),
        )
        conn.commit()
        return int(cur.lastrowid)
    finally:
        conn.close()


def find_product(product_id: int) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute(
            "SELECT id, name, brand_name, barcode, price, critical, is_active FROM products WHERE id = ?",
            (product_id,),
        ).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def set_branch_stock(branch_id: int, product_id: int, stock: int, is_active: bool = True) -> None:
    conn = _connect()
    try:
        conn.execute(
            "INSERT INTO branch_inventory(branch_id, product_id, stock, is_active) VALUES(?,?,?,?) "
            "ON CONFLICT(branch_id, product_id) DO UPDATE SET stock=excluded.stock, is_active=excluded.is_active",
            (branch_id, product_id, stock, int(is_active)),
        )
        conn.commit()
    finally:
        conn.close()


def get_branch_stock(branch_id: int, product_id: int) -> int:
    conn = _connect()
    try:
        return _get_stock(conn, branch_id, product_id)
    finally:
        conn.close()


def _get_stock(conn: sqlite3.Connection, branch_id: int, product_id: int) -> int:
    row = conn.execute(
        "SELECT stock FROM branch_inventory WHERE branch_id=? AND product_id=? AND is_active=1",
        (branch_id, product_id),
    ).fetchone()
    return int(row["stock"]) if row else 0


# ---------------- users / pharmacists ----------------

def add_user(
    employee_id: str,
    name: str,
    password_hash: str,
    role: str,
    email: Optional[str] = None,
    branch_id: Optional[int] = None,
    is_active: bool = True,
) -> int:
    conn = _connect()
    try:
        cur = conn.execute(
            "INSERT INTO users(employee_id, name, email, password, role, branch_id, is_active) "
            "VALUES(?,?,?,?,?,?,?)",
            (employee_id, name, email, password_hash, role, branch_id, int(is_active)),
        )
        conn.commit()
        return int(cur.lastrowid)
    finally:
        conn.close()


def find_active_user(employee_id: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute(
            "SELECT * FROM users WHERE employee_id = ? AND is_active = 1",
            (employee_id,),
        ).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def find_user_by_email(employee_id: str, email: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute(
            "SELECT * FROM users WHERE employee_id = ? AND email = ?",
            (employee_id, email),
        ).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def update_user_password(employee_id: str, password_hash: str) -> bool:
    conn = _connect()
    try:
        cur = conn.execute(
            "UPDATE users SET password = ? WHERE employee_id = ?",
            (password_hash, employee_id),
        )
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


def add_pharmacist(name: str, pin_code: str, branch_id: int, is_active: bool = True) -> int:
    conn = _connect()
    try:
        cur = conn.execute(
            "INSERT INTO pharmacist(name, pin_code, branch_id, is_active) VALUES(?,?,?,?)",
            (name, pin_code, branch_id, int(is_active)),
        )
        conn.commit()
        return int(cur.lastrowid)
    finally:
        conn.close()


def find_active_pharmacist(pin_code: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute(
            "SELECT * FROM pharmacist WHERE pin_code = ? AND is_active = 1",
            (pin_code,),
        ).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def open_sales_session(branch_id: int, staff_id: int) -> int:
    """
    Один транзакционный шаг:
    - sales_sessions для филиала
    - pharmacist_sessions с долей 100%
    Ошибка -> ROLLBACK и исключение наверх.
    """
    conn = _connect()
    try:
        conn.execute("BEGIN")
        cur = conn.execute(
            "INSERT INTO sales_sessions(branch_id, start_time) VALUES(?, ?)",
            (branch_id, _now()),
        )
        session_id = int(cur.lastrowid)
        conn.execute(
            "INSERT INTO pharmacist_sessions(session_id, staff_id, share_percentage) VALUES(?,?,?)",
            (session_id, staff_id, "100.00"),
        )
        conn.commit()
        return session_id
    except Exception:
        conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()


def get_sales_session(session_id: int) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute(
            """
            SELECT ss.session_id, ss.branch_id, ss.start_time, ss.end_time, ps.staff_id, ps.share_percentage
            FROM sales_sessions ss
            JOIN pharmacist_sessions ps ON ps.session_id = ss.session_id
            WHERE ss.session_id = ?
            """,
            (session_id,),
        ).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


# ---------------- checkout ----------------

def record_sale(
    session_id: int,
    branch_id: int,
    lines: Sequence[Tuple[int, int]],
    selection: DiscountSelection,
    payment_method: str = "cash",
    customer_id: Optional[int] = None,
) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
    """
    lines: [(product_id, quantity), ...]

    Делает в одной транзакции:
    - цены из products, расчёт итогов через pricing
    - проверка остатков филиала
    - запись sales + sale_items
    - списание branch_inventory
    """
    if not lines:
        return False, "cart is empty", None

    conn = _connect()
    try:
        conn.execute("BEGIN")

        # 1) собрать позиции и проверить остатки
        items: List[CartItem] = []
        wanted: Dict[int, int] = {}
        for product_id, qty in lines:
            prod = conn.execute(
                "SELECT id, name, brand_name, price FROM products WHERE id=? AND is_active=1",
                (product_id,),
            ).fetchone()
            if not prod:
                conn.execute("ROLLBACK")
                return False, f"product not found: {product_id}", None
            # одна и та же позиция может прийти несколькими строками
            pid = int(prod["id"])
            wanted[pid] = wanted.get(pid, 0) + int(qty)
            stock = _get_stock(conn, branch_id, pid)
            if stock < wanted[pid]:
                conn.execute("ROLLBACK")
                return False, f"not enough stock for {prod['name']}: have {stock}, need {wanted[pid]}", None
            items.append(
                CartItem(
                    product_id=int(prod["id"]),
                    price=to_decimal(prod["price"]),
                    quantity=int(qty),
                    name=prod["name"],
                )
            )

        totals = compute_totals(items, selection)

        subtotal = _money(totals.subtotal)
        discount = _money(totals.discount_amount)
        vat_amount = _money(totals.vat)
        total = subtotal - discount + vat_amount

        # 2) создать sale
        created_at = _now()
        cur = conn.execute(
            """
            INSERT INTO sales(invoice_number, branch_id, session_id, customer_id, discount_type,
                              subtotal, discount_amount, vat_amount, total_amount,
                              payment_method, payment_status, created_at)
            VALUES(?,?,?,?,?,?,?,?,?,?,?,?)
            """,
            (
                uuid.uuid4().hex,
                branch_id,
                session_id,
                customer_id,
                selection.kind,
                str(subtotal),
                str(discount),
                str(vat_amount),
                float(total),
                payment_method,
                "paid",
                created_at,
            ),
        )
        sale_id = int(cur.lastrowid)
        invoice_number = f"INV-{created_at[:10].replace('-', '')}-{sale_id:06d}"
        conn.execute("UPDATE sales SET invoice_number=? WHERE id=?", (invoice_number, sale_id))

        # 3) items + списание
        for it in totals.items:
            conn.execute(
                """
                INSERT INTO sale_items(sale_id, product_id, name, quantity, price, discount, line_total)
                VALUES(?,?,?,?,?,?,?)
                """,
                (
                    sale_id,
                    it.product_id,
                    it.name,
                    it.quantity,
                    str(_money(it.price)),
                    str(_money(it.discount)),
                    str(_money(it.line_total)),
                ),
            )
            conn.execute(
                "UPDATE branch_inventory SET stock = stock - ? WHERE branch_id=? AND product_id=?",
                (it.quantity, branch_id, it.product_id),
            )

        conn.commit()
        log.info("sale %s recorded: session=%s total=%s", invoice_number, session_id, total)

        return True, "ok", {
            "id": sale_id,
            "invoice_number": invoice_number,
            "subtotal": subtotal,
            "discount_amount": discount,
            "vat_amount": vat_amount,
            "total_amount": total,
            "created_at": created_at,
        }
    except Exception as e:
        conn.execute("ROLLBACK")
        log.exception("sale failed for session %s", session_id)
        return False, str(e), None
    finally:
        conn.close()


def get_sale(sale_id: int) -> Tuple[Optional[Dict[str, Any]], List[Dict[str, Any]]]:
    conn = _connect()
    try:
        sale = conn.execute(
            """
            SELECT s.*, b.branch_name
            FROM sales s
            LEFT JOIN branches b ON b.branch_id = s.branch_id
            WHERE s.id = ?
            """,
            (sale_id,),
        ).fetchone()
        if not sale:
            return None, []
        items = conn.execute(
            "SELECT product_id, name, quantity, price, discount, line_total FROM sale_items "
            "WHERE sale_id = ? ORDER BY id",
            (sale_id,),
        ).fetchall()
        return dict(sale), [dict(r) for r in items]
    finally:
        conn.close()


# ---------------- dashboard ----------------

def dashboard_overview() -> Dict[str, Any]:
    tz = _tz_modifier()
    conn = _connect()
    try:
        row = conn.execute(
            """
            SELECT
                COALESCE((SELECT SUM(total_amount) FROM sales
                          WHERE DATE(created_at, ?) = DATE('now', ?)), 0) AS todaySales,
                (SELECT COUNT(*) FROM products WHERE is_active = 1) AS totalProducts,
                (SELECT COUNT(*) FROM sales) AS totalOrders,
                (SELECT COUNT(DISTINCT customer_id) FROM sales WHERE customer_id IS NOT NULL) AS totalCustomers
            """,
            (tz, tz),
        ).fetchone()
        return dict(row)
    finally:
        conn.close()


def recent_transactions(limit: int = 5) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute(
            """
            SELECT
                s.id AS transaction_id,
                s.invoice_number,
                DATETIME(s.created_at, ?) AS created_at,
                ROUND(s.total_amount, ?) AS total_amount,
                s.payment_method,
                s.payment_status,
                b.branch_name
            FROM sales s
            LEFT JOIN branches b ON s.branch_id = b.branch_id
            ORDER BY s.created_at DESC, s.id DESC
            LIMIT ?
            """,
            (_tz_modifier(), settings.decimals, limit),
        ).fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


def low_stock_items(limit: int = 5) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute(
            """
            SELECT
                p.id, p.name, p.brand_name, p.barcode, p.critical,
                c.name AS category_name,
                b.branch_name, bi.stock
            FROM products p
            LEFT JOIN category c ON p.category = c.category_id
            JOIN branch_inventory bi ON p.id = bi.product_id
            JOIN branches b ON bi.branch_id = b.branch_id
            WHERE bi.stock <= p.critical
              AND p.is_active = 1
              AND bi.is_active = 1
            ORDER BY b.branch_name
            """
        ).fetchall()
    finally:
        conn.close()

    grouped: Dict[int, Dict[str, Any]] = {}
    for r in rows:
        item = grouped.get(r["id"])
        if item is None:
            item = grouped[r["id"]] = {
                "id": r["id"],
                "name": f"{r['name']} ({r['brand_name']})" if r["brand_name"] else r["name"],
                "barcode": r["barcode"],
                "category_name": r["category_name"],
                "critical": r["critical"],
                "_branches": [],
                "_min_stock": r["stock"],
                "_sort_name": r["name"],
            }
        item["_branches"].append(f"{r['branch_name']}: {r['stock']}")
        item["_min_stock"] = min(item["_min_stock"], r["stock"])

    ordered = sorted(grouped.values(), key=lambda it: (it["_min_stock"], it["_sort_name"]))
    return [
        {
            "id": it["id"],
            "name": it["name"],
            "barcode": it["barcode"],
            "category_name": it["category_name"],
            "critical": it["critical"],
            "critical_branches": ", ".join(it["_branches"]),
        }
        for it in ordered[:limit]
    ]
