"""
Change detection through Tally's AlterID counters.

Tally bumps AltMstId on every master edit and AltVchId on every voucher
edit. Comparing them with the values recorded by the last sync tells which
category of tables must be re-fetched.
"""
from __future__ import annotations
from loguru import logger

from .client import TallyClient
from .config import Tenant
from .exceptions import NoCompanyOpenError
from .loaders.bookkeeping import BookkeepingStore
from .models import AlterIds, ChangeSet
from .requests import alter_id_request

def _to_int(part: str) -> int:
    try:
        return int(part.strip())
    except ValueError:
        return 0


def parse_alter_ids(text: str) -> AlterIds:
    """
    Parse the comma-delimited AlterID report ("120","4512").

    Unparsable or missing parts count as 0.

    Raises:
        NoCompanyOpenError: If the response is empty (both AlterIDs unknown)
    """
    if not text or not text.strip():
        raise NoCompanyOpenError()
    parts = text.replace('"', "").strip().split(",")
    master = _to_int(parts[0])
    transaction = _to_int(parts[1]) if len(parts) > 1 else 0
    return AlterIds(master, transaction)


class VersionTracker:
    """Decides whether master and/or transaction data changed for a tenant."""

    def __init__(self, store: BookkeepingStore):
        self.store = store

    def fetch_live(self, tenant: Tenant, client: TallyClient) -> AlterIds:
        """Current AlterIDs of the tenant's company in Tally."""
        response = client.post_xml(alter_id_request(tenant.company))
        try:
            return parse_alter_ids(response)
        except NoCompanyOpenError:
            raise NoCompanyOpenError(client.base_url) from None

    def stored(self, tenant: Tenant) -> AlterIds:
        return self.store.stored_alter_ids(tenant)

    def detect(self, tenant: Tenant, client: TallyClient) -> ChangeSet:
        stored = self.stored(tenant)
        live = self.fetch_live(tenant, client)
        changes = ChangeSet(stored=stored, live=live)
        logger.info(
            f"{tenant.label}: AlterID master {stored.master} -> {live.master}, "
            f"transaction {stored.transaction} -> {live.transaction}"
        )
        return changes
