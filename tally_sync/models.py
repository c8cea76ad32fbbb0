"""
Records exchanged between the sync components.
"""
from __future__ import annotations
from datetime import date
from typing import NamedTuple, Optional
from pydantic import BaseModel, ConfigDict


class AlterIds(NamedTuple):
    """High-water marks of the last master and transaction edit in Tally."""

    master: int
    transaction: int


class ChangeSet(NamedTuple):
    stored: AlterIds
    live: AlterIds

    @property
    def master_changed(self) -> bool:
        return self.live.master != self.stored.master

    @property
    def transaction_changed(self) -> bool:
        return self.live.transaction != self.stored.transaction

    @property
    def any_changed(self) -> bool:
        return self.master_changed or self.transaction_changed


class CompanyInfo(BaseModel):
    """Bookkeeping details of the company open in Tally."""

    model_config = ConfigDict(frozen=True)

    name: str
    guid: str = ""
    books_from: Optional[date] = None
    last_voucher_date: Optional[date] = None
    alter_ids: AlterIds = AlterIds(0, 0)
