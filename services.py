from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from aggregation import aggregate_periods, rank_categories, summarize
from csv_utils import export_transactions
from ledger import LedgerStore
from periods import Granularity
from schemas import BucketOut, CategoryOut, SummaryOut, TransactionOut


logger = logging.getLogger(__name__)

DEFAULT_SECTIONS = ("balance", "periods", "categories", "summary", "recent")


class ReportService:
    """Builds the report payloads chart and export consumers read."""

    def __init__(self, store: LedgerStore) -> None:
        self.store = store

    def periods(
        self, granularity: Granularity, *, today: Optional[date] = None
    ) -> list[BucketOut]:
        buckets = aggregate_periods(self.store.transactions, granularity, today=today)
        return [
            BucketOut(
                label=b.label,
                start=b.start,
                end=b.end,
                expense_total=b.expense_total,
                income_total=b.income_total,
                net_total=b.net_total,
            )
            for b in buckets
        ]

    def categories(self, *, limit: Optional[int] = None) -> list[CategoryOut]:
        return [
            CategoryOut(label=c.label, display_label=c.display_label, total=c.total)
            for c in rank_categories(self.store.transactions, limit=limit)
        ]

    def summary(self) -> SummaryOut:
        s = summarize(self.store.transactions)
        return SummaryOut(
            total_expenses=s.total_expenses,
            total_income=s.total_income,
            net_savings=s.net_savings,
            average_amount=s.average_amount,
            transaction_count=s.transaction_count,
        )

    def gather_data(
        self,
        granularity: Granularity = Granularity.monthly,
        *,
        sections: Sequence[str] = DEFAULT_SECTIONS,
        today: Optional[date] = None,
        recent_limit: int = 5,
    ) -> dict[str, object]:
        unknown = set(sections) - set(DEFAULT_SECTIONS)
        if unknown:
            raise ValueError(f"Unknown report sections: {', '.join(sorted(unknown))}")

        data: dict[str, object] = {"granularity": Granularity(granularity).value}
        if "balance" in sections:
            data["balance"] = self.store.balance
        if "periods" in sections:
            data["periods"] = self.periods(granularity, today=today)
        if "categories" in sections:
            data["categories"] = self.categories()
        if "summary" in sections:
            data["summary"] = self.summary()
        if "recent" in sections:
            data["recent"] = [
                TransactionOut.from_transaction(txn)
                for txn in self.store.recent(recent_limit)
            ]
        logger.info(
            f"report_generated: user={self.store.user_id} "
            f"granularity={data['granularity']} sections={len(sections)}"
        )
        return data

    def export_csv(self) -> str:
        opening = self.store.initial_balance or Decimal("0")
        return export_transactions(self.store.transactions, opening)
