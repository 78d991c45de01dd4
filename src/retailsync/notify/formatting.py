"""Message text for order change notifications."""
from typing import Any, Dict, List

from retailsync.core.records import Change, ChangeKind
from retailsync.core.sanitize import parse_datetime, to_number

STATUS_LABELS = {
    1: "Draft",
    2: "Confirmed",
    3: "Completed",
    4: "Cancelled",
    5: "Processing",
}

NA = "N/A"


def change_title(change: Change) -> str:
    if change.kind is ChangeKind.NEW:
        return "🆕 NEW ORDER"
    return "🔄 ORDER UPDATED"


def status_label(order: Dict[str, Any]) -> str:
    if order.get("statusValue"):
        return order["statusValue"]
    return STATUS_LABELS.get(order.get("status"), NA)


def format_money(value: Any) -> str:
    return f"{to_number(value, 0):,.0f}đ"


def format_when(value: Any) -> str:
    dt = parse_datetime(value)
    return dt.strftime("%d/%m/%Y %H:%M:%S") if dt else NA


def _items_line(items: List[Dict[str, Any]]) -> str:
    return ", ".join(
        f"{item.get('productName') or item.get('productCode') or NA} ({item.get('quantity', 0)})"
        for item in items
        if isinstance(item, dict)
    )


def format_order_message(change: Change, *, markdown: bool = False) -> str:
    """
    Render a human-readable summary of a changed order.

    With ``markdown=True`` labels are wrapped in ``**`` (Lark ``lark_md``);
    otherwise plain text suitable for Telegram without a parse mode.
    """
    order = change.record
    b = "**" if markdown else ""

    lines = [
        f"{b}{change_title(change)}{b}",
        "",
        f"{b}Order:{b} {order.get('code') or NA}",
        f"{b}Created:{b} {format_when(order.get('createdDate'))}",
        f"{b}Customer:{b} {order.get('customerName') or NA}",
        f"{b}Branch:{b} {order.get('branchName') or NA}",
        f"{b}Sold by:{b} {order.get('soldByName') or NA}",
    ]
    items = order.get("orderDetails")
    if isinstance(items, list) and items:
        lines.append(f"{b}Items:{b} {_items_line(items)}")
    lines.append(f"{b}Total:{b} {format_money(order.get('total'))}")
    if order.get("description"):
        lines.append(f"{b}Note:{b} {order['description']}")

    status = status_label(order)
    if change.previous is not None and "status" in change.changed_fields:
        status = f"{status_label(change.previous)} → {status}"
    lines.append(f"{b}Status:{b} {status}")
    lines.append(f"{b}Modified:{b} {format_when(order.get('modifiedDate'))}")
    return "\n".join(lines)
