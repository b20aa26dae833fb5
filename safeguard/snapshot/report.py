"""Human-readable content report of the store, produced alongside a snapshot."""

from __future__ import annotations

import io
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Union

from rich.console import Console
from rich.table import Table

from safeguard.store.handle import StoreHandle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReportSection:
    title: str
    query: str
    columns: tuple[str, ...]


REPORT_SECTIONS: tuple[ReportSection, ...] = (
    ReportSection(
        "Items Inventory",
        "SELECT name, sku, stock_quantity, unit, cost_price, unit_price FROM items ORDER BY name",
        ("name", "sku", "stock_quantity", "unit", "cost_price", "unit_price"),
    ),
    ReportSection(
        "Categories",
        "SELECT name, description FROM categories ORDER BY name",
        ("name", "description"),
    ),
    ReportSection(
        "Suppliers",
        "SELECT name, contact_person, email, phone FROM suppliers ORDER BY name",
        ("name", "contact_person", "email", "phone"),
    ),
    ReportSection(
        "Purchases",
        "SELECT p.id, s.name AS supplier_name, p.total_amount, p.status, p.purchase_date "
        "FROM purchases p LEFT JOIN suppliers s ON p.supplier_id = s.id ORDER BY p.purchase_date DESC",
        ("id", "supplier_name", "total_amount", "status", "purchase_date"),
    ),
    ReportSection(
        "Sales",
        "SELECT id, customer_name, total_amount, sale_date FROM sales ORDER BY sale_date DESC",
        ("id", "customer_name", "total_amount", "sale_date"),
    ),
    ReportSection(
        "Stock Adjustments",
        "SELECT i.name AS item_name, sa.adjustment_type, sa.quantity, sa.reason, sa.created_at "
        "FROM stock_adjustments sa JOIN items i ON sa.item_id = i.id ORDER BY sa.created_at DESC",
        ("item_name", "adjustment_type", "quantity", "reason", "created_at"),
    ),
    ReportSection(
        "Users",
        "SELECT username, email, role, full_name, is_active FROM users ORDER BY username",
        ("username", "email", "role", "full_name", "is_active"),
    ),
)


class ContentReporter:
    """Render every mutable entity type into one plain-text report.

    A section whose query fails is logged and left out; the rest of the report
    is still written.
    """

    def __init__(self, store: StoreHandle, sections: tuple[ReportSection, ...] = REPORT_SECTIONS) -> None:
        self.store = store
        self.sections = sections

    def write(self, output_path: Union[str, Path]) -> Path:
        """Write the report.

        Args:
            output_path: Destination text file

        Returns:
            Path of the written report

        Raises:
            StoreUnavailableError: If the store is closed
            OSError: If the report file cannot be written
        """
        console = Console(record=True, width=140, file=io.StringIO(), color_system=None)
        console.print("Complete System Report", justify="center", style="bold")
        console.print(f"Generated: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')}", justify="center")
        console.print()

        omitted = []
        for section in self.sections:
            try:
                rows = self._fetch(section)
            except sqlite3.Error as e:
                logger.warning(f"Omitting '{section.title}' from content report: {e}")
                omitted.append(section.title)
                continue

            if not rows:
                continue

            table = Table(title=section.title, title_justify="left", show_lines=False)
            table.add_column("#", justify="right")
            for column in section.columns:
                table.add_column(column.replace("_", " ").title())

            for idx, row in enumerate(rows, start=1):
                table.add_row(str(idx), *[self._cell(row[column]) for column in section.columns])

            console.print(table)
            console.print()

        if omitted:
            console.print(f"Sections unavailable: {', '.join(omitted)}")

        output = Path(output_path)
        output.parent.mkdir(parents=True, exist_ok=True)
        console.save_text(str(output))
        return output

    def _fetch(self, section: ReportSection) -> list[sqlite3.Row]:
        with self.store.connection() as conn:
            return conn.execute(section.query).fetchall()

    @staticmethod
    def _cell(value: object) -> str:
        return "N/A" if value is None or value == "" else str(value)
