import csv
import re
from decimal import Decimal
from io import StringIO
from typing import Iterable

from aggregation import summarize
from models import TransactionKind
from reconcile import format_amount, running_balances
from schemas import Transaction


KIND_LABELS = {
    TransactionKind.debit: "Expense",
    TransactionKind.credit: "Income",
}


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^\.",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def _signed_text(value: Decimal) -> str:
    return f"{'-' if value < 0 else ''}{format_amount(value)}"


def export_transactions(
    transactions: Iterable[Transaction], opening_balance: Decimal = Decimal("0")
) -> str:
    """Chronological CSV with the balance after each transaction.

    A summary block (totals, net savings, count) follows the rows after a
    blank line.
    """
    transactions = list(transactions)
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(
        ["Date", "Time", "Description", "Type", "Amount", "Running Balance"]
    )
    for txn, balance in running_balances(transactions, opening_balance):
        writer.writerow(
            [
                txn.occurred_on.isoformat() if txn.occurred_on else "",
                txn.occurred_at.strftime("%H:%M:%S") if txn.occurred_at else "",
                sanitize_csv_value(txn.reason or "N/A"),
                KIND_LABELS[txn.kind],
                format_amount(txn.amount),
                _signed_text(balance),
            ]
        )

    summary = summarize(transactions)
    writer.writerow([])
    writer.writerow(["Transaction Summary"])
    writer.writerow(["Total Income", format_amount(summary.total_income)])
    writer.writerow(["Total Expenses", format_amount(summary.total_expenses)])
    writer.writerow(["Net Savings", _signed_text(summary.net_savings)])
    writer.writerow(["Total Transactions", summary.transaction_count])
    return output.getvalue()
