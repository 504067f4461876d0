from datetime import datetime
from typing import Iterable, List, Literal, Optional

from db.models import Order

CSV_HEADER = "订单编号,客户名称,客户地址,总金额,发货日期,状态,创建时间"

# status labels as they appear in the exported sheet
STATUS_TEXT_ZH = {
    "pending": "待审核",
    "approved": "已批准",
    "shipped": "已发货",
    "delivered": "已送达",
    "cancelled": "已取消",
}


def generate_markdown_table(
    headers: Optional[List[str]],
    rows: List[List[str]],
    aligns: Optional[List[Literal["l", "c", "r"]]] = None,
) -> str:
    """
    Generate a Markdown table.

    Args:
        headers: List of column headers, or None to use first row as headers.
        rows: List of rows, each a list of strings.
        aligns: List of alignments ('l', 'c', 'r') for each column.
                Defaults to all center ('c').

    Returns:
        str: Markdown formatted table.
    """
    if not rows:
        return ""

    # If no headers, take the first row as header and remove it from rows
    if not headers:
        headers, rows = rows[0], rows[1:]

    headers = list(map(str, headers))
    rows = [list(map(str, row)) for row in rows]

    num_cols = len(headers)
    if aligns is None:
        aligns = ["c"] * num_cols
    elif len(aligns) != num_cols:
        raise ValueError("Length of aligns must match number of headers.")

    align_map = {
        "l": ":---",
        "c": ":---:",
        "r": "---:",
    }

    header_line = "| " + " | ".join(headers) + " |"
    align_line = "| " + " | ".join(align_map[a] for a in aligns) + " |"
    row_lines = ["| " + " | ".join(map(str, row)) + " |" for row in rows]

    return "\n".join([header_line, align_line, *row_lines])


def format_price(price: float) -> str:
    return f"¥{price:,.2f}"


def format_amount(value: float) -> str:
    """Plain number for the CSV sheet: 25.0 -> '25', 25.5 -> '25.5'."""
    if value == int(value):
        return str(int(value))
    return str(value)


def format_local_time(ts: datetime) -> str:
    """Local wall-clock time like 2025/11/1 20:00:00."""
    local = ts.astimezone()
    return f"{local.year}/{local.month}/{local.day} {local:%H:%M:%S}"


def _quoted(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def orders_to_csv(orders: Iterable[Order]) -> str:
    """
    Render orders as the export sheet: a header line, then one line per order.
    Customer name and address are always quoted; the other columns never contain commas.
    """
    lines = [CSV_HEADER]
    for order in orders:
        lines.append(
            ",".join(
                [
                    order.id,
                    _quoted(order.customer_name),
                    _quoted(order.customer_address),
                    format_amount(order.total_amount),
                    order.delivery_date.isoformat() if order.delivery_date else "",
                    STATUS_TEXT_ZH.get(order.status, order.status),
                    format_local_time(order.created_at),
                ]
            )
        )
    return "\n".join(lines) + "\n"
