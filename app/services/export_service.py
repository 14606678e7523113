"""
CSV and Excel exports of orders and retailer fee reports
"""
import io
import re
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from app.models.order import Order
from app.services.fee_service import accepted_orders_in_range, calculate_fee_rate
from app.utils.helpers import round_money
from app.utils.logger import log


SERVICE_FEE_TAX_RATE = 0.0875
MAX_SHEET_NAME_LENGTH = 31

ORDER_EXPORT_COLUMNS = [
    ("Order ID", lambda o: o.id),
    ("Customer", lambda o: o.customer_name),
    ("Establishment", lambda o: o.establishment),
    ("Order Date", lambda o: o.order_date),
    ("Delivery Date", lambda o: o.delivery_date),
    ("Status", lambda o: o.status_value),
    ("Delivery Status", lambda o: o.delivery_status),
    ("Total", lambda o: f"{o.total:.2f}"),
    ("Revenue", lambda o: f"{o.revenue:.2f}"),
    ("Tax", lambda o: f"{o.tax:.2f}"),
    ("Tip", lambda o: f"{o.tip:.2f}"),
    ("Shipping Fee", lambda o: f"{o.shipping_fee:.2f}"),
    ("Delivery Fee", lambda o: f"{o.delivery_fee:.2f}"),
    ("Service Charge", lambda o: f"{o.service_charge:.2f}"),
]

SUMMARY_CSV_HEADERS = ["Retailer", "GMV", "Service Fee", "Retailer Fee", "Total Charges", "Order Count"]


def _quote(value) -> str:
    """Quote a cell; commas are stripped, embedded quotes are not escaped."""
    return '"' + str(value if value is not None else "").replace(",", "") + '"'


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def orders_to_csv(orders: Iterable[Order]) -> str:
    """Every field quoted, including the header row."""
    lines = [",".join(_quote(name) for name, _ in ORDER_EXPORT_COLUMNS)]
    for order in orders:
        lines.append(",".join(_quote(getter(order)) for _, getter in ORDER_EXPORT_COLUMNS))
    return "\n".join(lines)


def retailer_summary_csv(rows: List[Dict], totals: Dict) -> str:
    """Retailer fee summary with a TOTAL row; header row unquoted."""
    def cells(name, data):
        return [
            name,
            f"{data['gmv']:.2f}",
            f"{data['serviceFee']:.2f}",
            f"{data['retailerFee']:.2f}",
            f"{data['totalCharges']:.2f}",
            str(data["orderCount"]),
        ]

    body = [cells(row["name"], row) for row in rows]
    body.append(cells("TOTAL", totals))
    return "\n".join([",".join(SUMMARY_CSV_HEADERS)] + [",".join(_quote(c) for c in r) for r in body])


def retailer_summary_filename(start_date: str, end_date: str) -> str:
    return f"retailer-report-{start_date}-to-{end_date}.csv"


# ---------------------------------------------------------------------------
# Excel
# ---------------------------------------------------------------------------

def sanitize_sheet_name(name: str) -> str:
    """Excel sheet names: no / \\ ? * [ ] : and at most 31 characters."""
    cleaned = re.sub(r"[/\\?*\[\]:]", "-", name or "Sheet")
    return cleaned[:MAX_SHEET_NAME_LENGTH]


def workbook_filename(start_date: str, end_date: str, sheet: str) -> str:
    return f"bevvi_report_{start_date}_to_{end_date}_{sanitize_sheet_name(sheet)}.xlsx"


def _us_date(iso_date: str) -> str:
    if iso_date and re.fullmatch(r"\d{4}-\d{2}-\d{2}", iso_date):
        year, month, day = iso_date.split("-")
        return f"{month}/{day}/{year}"
    return iso_date


def build_transactions(orders: Iterable[Order]) -> pd.DataFrame:
    """One row per order with marketing fee, fee tax and total."""
    records = []
    for order in orders:
        subtotal = order.revenue or 0.0
        fee = round_money(subtotal * calculate_fee_rate(order.establishment, order.customer_name))
        fee_tax = round_money(fee * SERVICE_FEE_TAX_RATE)
        records.append({
            "retailer": (order.establishment or "Unknown Retailer").strip(),
            "date": order.order_date or "",
            "customer": order.customer_name or "Unknown Customer",
            "order_number": order.id or "N/A",
            "subtotal": subtotal,
            "fee": fee,
            "fee_tax": fee_tax,
            "total": round_money(subtotal + fee + fee_tax),
        })
    columns = ["retailer", "date", "customer", "order_number", "subtotal", "fee", "fee_tax", "total"]
    return pd.DataFrame.from_records(records, columns=columns)


def _executive_summary(transactions: pd.DataFrame) -> pd.DataFrame:
    grouped = (
        transactions.groupby("retailer", sort=True)[["subtotal", "fee", "total"]]
        .sum()
        .round(2)
        .reset_index()
    )
    grand_total = pd.DataFrame([{
        "retailer": "GRAND TOTAL",
        "subtotal": round_money(grouped["subtotal"].sum()),
        "fee": round_money(grouped["fee"].sum()),
        "total": round_money(grouped["total"].sum()),
    }])
    summary = pd.concat([grouped, grand_total], ignore_index=True)
    return summary.rename(columns={
        "retailer": "Retailer Name",
        "subtotal": "Subtotal",
        "fee": "Bevvi Marketing Fees",
        "total": "Total",
    })


def _customer_summary(transactions: pd.DataFrame) -> pd.DataFrame:
    grouped = (
        transactions.groupby("customer", sort=False)[["subtotal", "fee", "total"]]
        .sum()
        .round(2)
        .reset_index()
    )
    grouped = grouped.sort_values("customer", key=lambda s: s.str.lower(), kind="stable")
    total = pd.DataFrame([{
        "customer": "TOTAL",
        "subtotal": round_money(grouped["subtotal"].sum()),
        "fee": round_money(grouped["fee"].sum()),
        "total": round_money(grouped["total"].sum()),
    }])
    summary = pd.concat([grouped, total], ignore_index=True)
    return summary.rename(columns={
        "customer": "Customer",
        "subtotal": "Subtotal",
        "fee": "Bevvi Marketing Fees",
        "total": "Total",
    })


def _detailed_transactions(transactions: pd.DataFrame) -> pd.DataFrame:
    detail = transactions.sort_values(["date", "customer"], kind="stable").copy()
    detail["date"] = detail["date"].map(_us_date)
    detail = detail[["date", "customer", "order_number", "subtotal", "fee", "fee_tax", "total"]]
    return detail.rename(columns={
        "date": "Date",
        "customer": "Customer",
        "order_number": "Order Number",
        "subtotal": "Subtotal",
        "fee": "Bevvi Marketing Fee",
        "fee_tax": "Service Fee Tax",
        "total": "Total",
    })


def build_retailer_workbook(
    orders: Iterable[Order],
    start_date: str,
    end_date: str,
    retailer: Optional[str] = None
) -> Tuple[bytes, str]:
    """
    Build the retailer fee workbook.

    Sheets: "Executive Summary" (one row per retailer plus GRAND TOTAL),
    then one sheet per retailer with a customer summary (alphabetical, TOTAL
    row), two blank rows, and the detailed transactions sorted by date then
    customer.

    Returns:
        (xlsx bytes, filename)

    Raises:
        ValueError: no accepted orders for the retailer/range
    """
    selected = accepted_orders_in_range(orders, start_date, end_date)
    if retailer:
        selected = [o for o in selected if (o.establishment or "").strip() == retailer]
    if not selected:
        target = retailer or "any retailer"
        raise ValueError(f"No orders found for {target} in the selected date range.")

    transactions = build_transactions(selected)
    buffer = io.BytesIO()

    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        _executive_summary(transactions).to_excel(writer, sheet_name="Executive Summary", index=False)

        used_names = {"Executive Summary"}
        for name, group in transactions.groupby("retailer", sort=True):
            sheet_name = sanitize_sheet_name(name)
            suffix = 2
            while sheet_name in used_names:
                sheet_name = sanitize_sheet_name(f"{name[:27]} ({suffix})")
                suffix += 1
            used_names.add(sheet_name)

            customers = _customer_summary(group)
            customers.to_excel(writer, sheet_name=sheet_name, index=False, startrow=1)

            # 1-indexed: title, header, rows, two blank rows, then the next title
            detail_title_row = len(customers) + 5
            _detailed_transactions(group).to_excel(
                writer, sheet_name=sheet_name, index=False, startrow=detail_title_row
            )

            sheet = writer.sheets[sheet_name]
            sheet.cell(row=1, column=1, value="Customer Summary")
            sheet.cell(row=detail_title_row, column=1, value="Detailed Transactions")

    sheet_label = retailer or "All Retailers"
    log.info(f"Built retailer workbook for {sheet_label}: {len(selected)} orders")
    return buffer.getvalue(), workbook_filename(start_date, end_date, sheet_label)
