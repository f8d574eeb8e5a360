"""Ledger query package."""

from pocket_ledger.queries.paged_view import DEFAULT_PAGE_SIZE, PagedTransactionView

__all__ = ["DEFAULT_PAGE_SIZE", "PagedTransactionView"]
