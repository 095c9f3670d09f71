"""
Keeps the order spreadsheet in step with Slack.

Every confirmed order line is written twice: once to the master sheet (the
first tab, whatever it is called) and once to a tab named after the company.
Rows are keyed by the Slack ts of the message they came from, so edits and
deletes in Slack can find them again. Nothing is cached between calls.
"""

import logging
from datetime import datetime
from typing import Any, Callable, List, Optional, Protocol, Sequence

import pytz

from constants.schemas import OrderLine, SyncResult
from constants.sheets import (
    DEFAULT_MASTER_SHEET,
    DEFAULT_TIMEZONE,
    HEADER_ROW,
    LITERAL_PREFIX,
    REMARKS_COL,
    SLACK_TS_COL,
    WRITTEN_AT_FORMAT,
)

logger = logging.getLogger(__name__)


class TabularStore(Protocol):
    async def list_tables(self, store_id: str) -> List[str]: ...

    async def create_table(self, store_id: str, name: str, header_row: List[Any]) -> None: ...

    async def append_row(self, store_id: str, table: str, row: List[Any]) -> None: ...

    async def read_all_rows(self, store_id: str, table: str) -> List[List[Any]]: ...

    async def delete_row(self, store_id: str, table: str, row_index: int) -> None: ...


def quote_ts(ts: Any) -> str:
    return f"{LITERAL_PREFIX}{ts}"


def unquote_ts(cell: Any) -> str:
    return str(cell).replace(LITERAL_PREFIX, "").strip()


def find_table(tables: Sequence[str], name: str) -> Optional[str]:
    """Existing tab whose title equals name ignoring case. Sheets titles are unique that way."""
    wanted = name.casefold()
    for title in tables:
        if title.casefold() == wanted:
            return title
    return None


def is_protected(row: Sequence[Any]) -> bool:
    """A row with anything in the remarks column was annotated by a person."""
    if len(row) <= REMARKS_COL:
        return False
    remarks = row[REMARKS_COL]
    return remarks is not None and str(remarks).strip() != ""


class SyncEngine:
    def __init__(self, store: TabularStore, timezone: str = DEFAULT_TIMEZONE, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.timezone = pytz.timezone(timezone)
        self._clock = clock

    def _now(self) -> str:
        now = self._clock() if self._clock else datetime.now(pytz.utc)
        if now.tzinfo is None:
            now = pytz.utc.localize(now)
        return now.astimezone(self.timezone).strftime(WRITTEN_AT_FORMAT)

    def build_row(self, line: OrderLine, written_at: str) -> List[Any]:
        return [line.company, line.product, line.count, quote_ts(line.source_ts), written_at]

    async def ensure_table(self, store_id: str, name: str, existing: Optional[List[str]] = None) -> bool:
        """Create the sheet with the standard header if it is missing. Returns True if created."""
        tables = existing if existing is not None else await self.store.list_tables(store_id)
        if find_table(tables, name) is not None:
            return False

        logger.info(f"Creating new sheet: {name}")
        await self.store.create_table(store_id, name, list(HEADER_ROW))
        return True

    async def _company_table(self, store_id: str, company: str) -> str:
        """Title of the company's tab, created if missing. "ACME" lands in an existing "acme" tab."""
        tables = await self.store.list_tables(store_id)
        title = find_table(tables, company)
        if title is not None:
            return title
        await self.ensure_table(store_id, company, existing=tables)
        return company

    async def _master_table(self, store_id: str) -> str:
        tables = await self.store.list_tables(store_id)
        if tables:
            return tables[0]
        await self.ensure_table(store_id, DEFAULT_MASTER_SHEET, existing=tables)
        return DEFAULT_MASTER_SHEET

    async def append(self, store_id: str, lines: Sequence[OrderLine]) -> int:
        """
        Write each line to the master sheet and to its company sheet.

        Master sheet failures are logged and ignored. Company sheet failures
        propagate and stop the remaining lines.

        Returns:
            int: number of rows written to company sheets
        """
        if not lines:
            return 0

        master = await self._master_table(store_id)
        logger.info(f"Master sheet: {master}")

        written = 0
        for line in lines:
            row = self.build_row(line, self._now())
            logger.info(f"Recording: [{line.company}] {line.product} {line.count} (TS: {line.source_ts})")

            if line.company.casefold() != master.casefold():
                try:
                    await self.store.append_row(store_id, master, row)
                    logger.info(f"{master} (master) write succeeded")
                except Exception as e:
                    logger.warning(f"{master} (master) write failed: {str(e)}")

            try:
                table = await self._company_table(store_id, line.company)
                await self.store.append_row(store_id, table, row)
            except Exception as e:
                logger.error(f"{line.company} sheet write failed: {str(e)}")
                raise
            logger.info(f"{table} sheet write succeeded")
            written += 1

        return written

    async def delete_by_timestamp(self, store_id: str, ts: Any) -> SyncResult:
        """
        Delete every row whose Slack_TS column equals ts, in every sheet.

        Rows with remarks are left alone. Each sheet is walked bottom-up so a
        deletion never shifts a row that is still to be checked.
        """
        target_ts = str(ts).strip()
        logger.info(f"Searching rows to delete (TS: {target_ts})...")

        result = SyncResult()
        for table in await self.store.list_tables(store_id):
            rows = await self.store.read_all_rows(store_id, table)
            if not rows:
                continue

            for i in range(len(rows) - 1, -1, -1):
                row = rows[i]
                if len(row) <= SLACK_TS_COL or unquote_ts(row[SLACK_TS_COL]) != target_ts:
                    continue

                if is_protected(row):
                    logger.info(
                        f"[Protected] {table} row {i + 1} has remarks, skipping (remarks: {row[REMARKS_COL]})"
                    )
                    result.protected += 1
                    continue

                logger.info(f"[Found] {table} row {i + 1}, deleting")
                await self.store.delete_row(store_id, table, i)
                result.deleted += 1

        logger.info(f"Delete finished for TS {target_ts}: {result.deleted} deleted, {result.protected} protected")
        return result

    async def update_by_timestamp(self, store_id: str, ts: Any, new_lines: Sequence[OrderLine]) -> SyncResult:
        """An edit is a delete of the old rows followed by a fresh append."""
        logger.info(f"Update requested for TS: {ts}")
        result = await self.delete_by_timestamp(store_id, ts)
        await self.append(store_id, new_lines)
        return result
