from decimal import Decimal
from typing import Callable, Iterable, List, Literal, Optional

from core.ledger import format_number
from db.models import CartItem, CashClosing, ClosingStatus, HoldSale, Invoice, InvoiceStatus, Totals

Formatter = Callable[[int], str]


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


def format_quantity(qty: Decimal) -> str:
    """1 -> '1', 1.500 -> '1.5'."""
    if qty == qty.to_integral_value():
        return str(int(qty))
    return format(qty.normalize(), "f")


def items_table(items: Iterable[CartItem], fmt: Formatter) -> str:
    rows = [
        [
            item.product_name,
            format_quantity(item.quantity),
            fmt(item.unit_price),
            fmt(item.total_price),
        ]
        for item in items
    ]
    return generate_markdown_table(
        ["Product", "Qty", "Unit Price", "Line Total"], rows, ["l", "r", "r", "r"]
    )


def totals_lines(totals: Totals, fmt: Formatter) -> str:
    lines = [f"Subtotal: {fmt(totals.subtotal_without_tax)}  ", f"Tax: {fmt(totals.tax_amount)}  "]
    if totals.discount_amount:
        lines.append(f"Discount: -{fmt(totals.discount_amount)}  ")
    lines.append(f"**Total: {fmt(totals.total)}**")
    return "\n".join(lines)


def invoice_markdown(invoice: Invoice, fmt: Formatter, business_name: str = "") -> str:
    """Receipt-style rendering of an invoice for the detail panes."""
    title = f"{business_name} Invoice" if business_name else "Invoice"
    header = f"### {title} #{format_number(invoice.invoice_number)}\n"
    meta = [
        f"Date: {invoice.created_at:%Y-%m-%d %H:%M}  ",
        f"Cashier: {invoice.cashier_name}  ",
        f"Payment: {invoice.payment_method.value}  ",
    ]
    if invoice.customer:
        contact = ", ".join(p for p in (invoice.customer.phone, invoice.customer.email) if p)
        meta.append(f"Customer: {invoice.customer.name}" + (f" ({contact})" if contact else "") + "  ")
    if invoice.status is InvoiceStatus.VOIDED:
        meta.append(
            f"**VOIDED** {invoice.voided_at:%Y-%m-%d %H:%M}"
            + (f": {invoice.void_reason}" if invoice.void_reason else "")
            + "  "
        )

    body = [header, "\n".join(meta), "", items_table(invoice.items, fmt), "", totals_lines(invoice.totals, fmt)]
    if invoice.tendered is not None:
        body.append(f"\nTendered: {fmt(invoice.tendered)}  \nChange: {fmt(invoice.change or 0)}")
    if invoice.split:
        body.append("\nPaid: " + ", ".join(f"{m.value} {fmt(a)}" for m, a in invoice.split.items()))
    return "\n".join(body)


def closing_markdown(closing: CashClosing, fmt: Formatter) -> str:
    """Cash closing sheet: sales by method, then the drawer count."""
    header = f"### Cash closing {closing.day.isoformat()} ({closing.cashier_name})\n"
    period = f"Opened: {closing.opened_at:%H:%M}"
    if closing.closed_at:
        period += f"  \nClosed: {closing.closed_at:%H:%M}"
    if closing.status is ClosingStatus.OPEN:
        return "\n".join([header, period, "", f"Starting cash: {fmt(closing.initial_amount)}"])

    sales = generate_markdown_table(
        ["Method", "Amount"],
        [[m.value.title(), fmt(a)] for m, a in closing.by_method.items()],
        ["l", "r"],
    )
    if closing.difference > 0:
        verdict = f"Over: {fmt(closing.difference)}"
    elif closing.difference < 0:
        verdict = f"Short: {fmt(-closing.difference)}"
    else:
        verdict = "Balanced"
    drawer = [
        f"Transactions: {closing.transaction_count}  ",
        f"Total sales: {fmt(closing.total_sales)}  ",
        f"Starting cash: {fmt(closing.initial_amount)}  ",
        f"Expected cash: {fmt(closing.expected_cash)}  ",
        f"Counted cash: {fmt(closing.physical_count)}  ",
        f"**{verdict}**",
    ]
    body = [header, period, "", sales or "_No sales._", "", "\n".join(drawer)]
    if closing.notes:
        body.append(f"\nNotes: {closing.notes}")
    return "\n".join(body)


def hold_markdown(hold: HoldSale, fmt: Formatter) -> str:
    meta = [f"Parked: {hold.created_at:%Y-%m-%d %H:%M}  ", f"Cashier: {hold.cashier_name}  "]
    if hold.customer_name:
        meta.append(f"Customer: {hold.customer_name}  ")
    if hold.notes:
        meta.append(f"Notes: {hold.notes}  ")
    return "\n".join(
        [
            f"### Parked sale {hold.id[-8:]}\n",
            "\n".join(meta),
            "",
            items_table(hold.items, fmt),
            "",
            totals_lines(hold.totals, fmt),
        ]
    )
