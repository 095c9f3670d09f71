import os
import sys
import unittest
from datetime import datetime

import pytz

# Add the parent directory to the path to access order_bot
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from constants.schemas import OrderLine
from constants.sheets import HEADER_ROW
from order_bot.sheet_sync import SyncEngine, find_table, is_protected, quote_ts, unquote_ts
from fakes import InMemoryStore

SHEET_ID = "sheet-123"
TS = "1712345678.000100"
FIXED_NOW = pytz.utc.localize(datetime(2025, 3, 1, 3, 4, 5))


def line(company, product, count, ts=TS):
    return OrderLine(company=company, product=product, count=count, source_ts=ts)


class TestRowHelpers(unittest.TestCase):

    def test_quote_roundtrip(self):
        self.assertEqual(quote_ts(TS), "'" + TS)
        self.assertEqual(unquote_ts("'" + TS), TS)
        self.assertEqual(unquote_ts(f"  {TS} "), TS)

    def test_find_table_ignores_case(self):
        self.assertEqual(find_table(["Orders", "acme"], "ACME"), "acme")
        self.assertEqual(find_table(["Orders", "acme"], "orders"), "Orders")
        self.assertIsNone(find_table(["Orders"], "globex"))

    def test_is_protected(self):
        self.assertFalse(is_protected(["acme", "big", 1, TS, "now"]))
        self.assertFalse(is_protected(["acme", "big", 1, TS, "now", "   "]))
        self.assertFalse(is_protected(["acme", "big", 1, TS, "now", None]))
        self.assertTrue(is_protected(["acme", "big", 1, TS, "now", "paid"]))


class TestSyncEngine(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.store = InMemoryStore({"All Orders": [list(HEADER_ROW)]})
        self.engine = SyncEngine(self.store, timezone="Asia/Seoul", clock=lambda: FIXED_NOW)

    async def test_ensure_table_is_idempotent(self):
        self.assertTrue(await self.engine.ensure_table(SHEET_ID, "acme"))
        self.assertFalse(await self.engine.ensure_table(SHEET_ID, "acme"))
        self.assertEqual(self.store.tables["acme"], [list(HEADER_ROW)])
        self.assertEqual(self.store.created, ["acme"])

    async def test_append_writes_master_and_company_rows(self):
        written = await self.engine.append(SHEET_ID, [line("acme", "big", 3), line("acme", "green", 2)])

        self.assertEqual(written, 2)
        expected = [
            ["acme", "big", 3, "'" + TS, "2025-03-01 12:04:05"],
            ["acme", "green", 2, "'" + TS, "2025-03-01 12:04:05"],
        ]
        self.assertEqual(self.store.tables["acme"][0], list(HEADER_ROW))
        self.assertEqual(self.store.tables["acme"][1:], expected)
        self.assertEqual(self.store.tables["All Orders"][1:], expected)

    async def test_append_creates_one_sheet_per_company(self):
        await self.engine.append(SHEET_ID, [line("acme", "big", 1), line("globex", "blue", 4)])
        self.assertEqual(list(self.store.tables.keys()), ["All Orders", "acme", "globex"])
        self.assertEqual(len(self.store.tables["All Orders"]), 3)

    async def test_master_failure_is_swallowed(self):
        self.store.failing_tables.add("All Orders")
        written = await self.engine.append(SHEET_ID, [line("acme", "big", 3), line("acme", "green", 2)])
        self.assertEqual(written, 2)
        self.assertEqual(len(self.store.tables["acme"]), 3)
        self.assertEqual(len(self.store.tables["All Orders"]), 1)

    async def test_company_failure_propagates(self):
        await self.engine.ensure_table(SHEET_ID, "acme")
        self.store.failing_tables.add("acme")
        with self.assertRaises(RuntimeError):
            await self.engine.append(SHEET_ID, [line("acme", "big", 3), line("acme", "green", 2)])
        # the first master write happened before the company write failed
        self.assertEqual(len(self.store.tables["All Orders"]), 2)

    async def test_company_named_like_master_is_written_once(self):
        await self.engine.append(SHEET_ID, [line("All Orders", "big", 1)])
        self.assertEqual(len(self.store.tables["All Orders"]), 2)

    async def test_company_case_matches_existing_tab(self):
        await self.engine.append(SHEET_ID, [line("acme", "big", 1)])
        await self.engine.append(SHEET_ID, [line("ACME", "green", 2)])

        self.assertEqual(self.store.created, ["acme"])
        self.assertEqual([row[:3] for row in self.store.tables["acme"][1:]], [["acme", "big", 1], ["ACME", "green", 2]])
        self.assertFalse(await self.engine.ensure_table(SHEET_ID, "Acme"))

    async def test_company_named_like_master_in_other_case(self):
        await self.engine.append(SHEET_ID, [line("all orders", "big", 1)])
        self.assertEqual(len(self.store.tables["All Orders"]), 2)
        self.assertEqual(self.store.created, [])

    async def test_empty_store_gets_default_master(self):
        store = InMemoryStore()
        engine = SyncEngine(store, clock=lambda: FIXED_NOW)
        await engine.append(SHEET_ID, [line("acme", "big", 1)])
        self.assertEqual(list(store.tables.keys()), ["Orders", "acme"])
        self.assertEqual(len(store.tables["Orders"]), 2)

    async def test_append_then_delete_leaves_no_rows(self):
        await self.engine.append(SHEET_ID, [line("acme", "big", 3), line("acme", "green", 2)])
        result = await self.engine.delete_by_timestamp(SHEET_ID, TS)

        self.assertEqual(result.deleted, 4)
        self.assertEqual(result.protected, 0)
        self.assertEqual(self.store.rows_for("acme", TS), [])
        self.assertEqual(self.store.rows_for("All Orders", TS), [])
        # headers survive
        self.assertEqual(self.store.tables["acme"], [list(HEADER_ROW)])

    async def test_delete_walks_bottom_up(self):
        other = "1712345678.000200"
        await self.engine.append(SHEET_ID, [line("acme", "big", 1)])
        await self.engine.append(SHEET_ID, [line("acme", "blue", 1, ts=other)])
        await self.engine.append(SHEET_ID, [line("acme", "green", 1)])

        await self.engine.delete_by_timestamp(SHEET_ID, TS)

        acme_deletes = [index for table, index in self.store.deleted if table == "acme"]
        self.assertEqual(acme_deletes, [3, 1])
        self.assertEqual([row[1] for row in self.store.tables["acme"][1:]], ["blue"])

    async def test_protected_row_survives(self):
        self.store.tables["acme"] = [
            list(HEADER_ROW),
            ["acme", "big", 3, TS, "2025-03-01 12:04:05", "called customer"],
            ["acme", "green", 2, TS, "2025-03-01 12:04:05"],
        ]
        result = await self.engine.delete_by_timestamp(SHEET_ID, TS)

        self.assertEqual(result.deleted, 1)
        self.assertEqual(result.protected, 1)
        self.assertEqual(
            self.store.tables["acme"][1:],
            [["acme", "big", 3, TS, "2025-03-01 12:04:05", "called customer"]],
        )

    async def test_delete_matches_trimmed_string_exactly(self):
        self.store.tables["acme"] = [
            list(HEADER_ROW),
            ["acme", "big", 1, f" '{TS} ", "x"],
            ["acme", "big", 1, TS + "1", "x"],
            ["acme", "big", 1],
        ]
        result = await self.engine.delete_by_timestamp(SHEET_ID, f" {TS}")
        self.assertEqual(result.deleted, 1)
        self.assertEqual(len(self.store.tables["acme"]), 3)

    async def test_update_is_delete_then_append(self):
        await self.engine.append(SHEET_ID, [line("acme", "big", 3), line("acme", "green", 2)])
        result = await self.engine.update_by_timestamp(SHEET_ID, TS, [line("acme", "blue", 7)])

        self.assertEqual(result.deleted, 4)
        self.assertEqual(
            self.store.rows_for("acme", TS),
            [["acme", "blue", 7, "'" + TS, "2025-03-01 12:04:05"]],
        )
        self.assertEqual(len(self.store.rows_for("All Orders", TS)), 1)

    async def test_update_keeps_protected_rows_and_appends(self):
        self.store.tables["acme"] = [
            list(HEADER_ROW),
            ["acme", "big", 3, TS, "old", "do not touch"],
        ]
        await self.engine.update_by_timestamp(SHEET_ID, TS, [line("acme", "big", 4)])
        self.assertEqual(len(self.store.rows_for("acme", TS)), 2)


if __name__ == '__main__':
    unittest.main()
