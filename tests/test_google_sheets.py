"""
Tests for the Google Sheets backend.

The gspread client is replaced by mocks; these tests check row mapping
and which cells get written, not the Sheets API.
"""

from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch
from uuid import uuid4

import gspread
import pytest

from waterfall.config import GoogleSheetsSettings
from waterfall.models import (
    AllocationType,
    AuditEventBuilder,
    OverflowTargetType,
    Rule,
    TargetKind,
    TargetType,
)
from waterfall.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsCatalog,
    GoogleSheetsClient,
    GoogleSheetsRuleStore,
    NotFoundError,
)
from waterfall.services.storage.google_sheets import (
    RULE_COLUMNS,
    TARGET_COLUMNS,
)


def _client_with(sheet_name: str, rows: list[list[str]]) -> tuple[MagicMock, MagicMock]:
    """A mock client whose sheet_name() returns a sheet holding rows."""
    sheet = MagicMock()
    sheet.get_all_values.return_value = rows
    client = MagicMock()
    getattr(client, sheet_name).return_value = sheet
    return client, sheet


def _goal_rule(**fields) -> Rule:
    defaults = dict(
        owner_id="acct-1",
        priority_order=2,
        target_type=TargetType.GOAL,
        target_id="goal-1",
        allocation_type=AllocationType.PERCENTAGE,
        percentage=Decimal("12.5"),
        overflow_target_id="goal-2",
        overflow_target_type=OverflowTargetType.GOAL,
    )
    defaults.update(fields)
    return Rule(**defaults)


class TestRuleRows:
    """Rule <-> row mapping."""

    def test_rule_row_round_trip(self):
        """Every field survives a trip through a sheet row."""
        rule = _goal_rule()
        row = GoogleSheetsRuleStore._rule_to_row(rule)

        assert len(row) == len(RULE_COLUMNS)
        assert row[7] == "12.5"
        assert GoogleSheetsRuleStore._row_to_rule(row) == rule

    def test_short_row_uses_defaults(self):
        """Trailing empty cells that Sheets drops are tolerated."""
        rule = GoogleSheetsRuleStore._row_to_rule(
            ["r1", "acct-1", "", "category", "cat-1", "remainder"]
        )
        assert rule.priority_order == 0
        assert rule.amount is None
        assert not rule.due_date_aware
        assert rule.overflow_target_type is None

    @pytest.mark.asyncio
    async def test_list_rules_filters_and_orders(self):
        """Only the owner's rules, sorted by priority, malformed rows skipped."""
        late = _goal_rule(priority_order=5)
        early = _goal_rule(priority_order=1)
        other = _goal_rule(owner_id="acct-2")
        rows = [
            RULE_COLUMNS,
            GoogleSheetsRuleStore._rule_to_row(late),
            ["broken", "acct-1", "x", "nonsense"],
            GoogleSheetsRuleStore._rule_to_row(other),
            GoogleSheetsRuleStore._rule_to_row(early),
        ]
        client, _ = _client_with("rules_sheet", rows)

        rules = await GoogleSheetsRuleStore(client).list_rules("acct-1")
        assert [r.id for r in rules] == [early.id, late.id]

    @pytest.mark.asyncio
    async def test_save_new_rule_appends(self):
        """Unknown ids are appended."""
        client, sheet = _client_with("rules_sheet", [RULE_COLUMNS])
        rule = _goal_rule()

        await GoogleSheetsRuleStore(client).save_rule(rule)
        sheet.append_row.assert_called_once_with(
            GoogleSheetsRuleStore._rule_to_row(rule), value_input_option="RAW"
        )

    @pytest.mark.asyncio
    async def test_save_existing_rule_updates_in_place(self):
        """Known ids overwrite their row."""
        rule = _goal_rule()
        client, sheet = _client_with(
            "rules_sheet", [RULE_COLUMNS, GoogleSheetsRuleStore._rule_to_row(rule)]
        )
        updated = rule.model_copy(update={"priority_order": 9})

        await GoogleSheetsRuleStore(client).save_rule(updated)
        sheet.update.assert_called_once_with(
            range_name="A2",
            values=[GoogleSheetsRuleStore._rule_to_row(updated)],
            value_input_option="RAW",
        )
        sheet.append_row.assert_not_called()

    @pytest.mark.asyncio
    async def test_reorder_writes_priority_cells(self):
        """Each reordered rule gets its priority cell rewritten."""
        a, b = _goal_rule(), _goal_rule()
        client, sheet = _client_with("rules_sheet", [
            RULE_COLUMNS,
            GoogleSheetsRuleStore._rule_to_row(a),
            GoogleSheetsRuleStore._rule_to_row(b),
        ])

        await GoogleSheetsRuleStore(client).reorder_rules([(a.id, 2), (b.id, 1)])
        priority_col = RULE_COLUMNS.index("priority_order") + 1
        sheet.update_cell.assert_any_call(2, priority_col, "2")
        sheet.update_cell.assert_any_call(3, priority_col, "1")

    @pytest.mark.asyncio
    async def test_reorder_missing_rule_writes_nothing(self):
        """An unknown id aborts before any cell is touched."""
        client, sheet = _client_with("rules_sheet", [RULE_COLUMNS])
        with pytest.raises(NotFoundError):
            await GoogleSheetsRuleStore(client).reorder_rules([("missing", 1)])
        sheet.update_cell.assert_not_called()


class TestCatalog:
    """Targets and balance increments."""

    ROWS = [
        TARGET_COLUMNS,
        ["cat-1", "category", "Rent", "", "100", "120000", "2024-03-05", "expense", "", "b1", "a1"],
        ["goal-1", "goal", "Trip", "50000", "40000", "0", "", "", "u1", "", ""],
    ]

    @pytest.mark.asyncio
    async def test_lookups_by_kind(self):
        """A goal row is never returned as a category."""
        client, _ = _client_with("targets_sheet", self.ROWS)
        catalog = GoogleSheetsCatalog(client)

        rent = await catalog.get_category("cat-1")
        assert rent.planned_amount == 120_000
        assert rent.due_date.day == 5
        assert await catalog.get_category("goal-1") is None
        assert (await catalog.get_goal("goal-1")).capacity == 50_000

    @pytest.mark.asyncio
    async def test_increment_adds_to_current_cell(self):
        """The current cell is re-read and the sum written back."""
        client, sheet = _client_with("targets_sheet", self.ROWS)
        sheet.cell.return_value.value = "250"

        new_value = await GoogleSheetsCatalog(client).increment_category_available("cat-1", 50)

        col = TARGET_COLUMNS.index("current_amount") + 1
        assert new_value == 300
        sheet.cell.assert_called_once_with(2, col)
        sheet.update_cell.assert_called_once_with(2, col, "300")

    @pytest.mark.asyncio
    async def test_increment_wrong_kind(self):
        """Incrementing a goal id as a category fails without writing."""
        client, sheet = _client_with("targets_sheet", self.ROWS)
        with pytest.raises(NotFoundError):
            await GoogleSheetsCatalog(client).increment_category_available("goal-1", 50)
        sheet.update_cell.assert_not_called()

    @pytest.mark.asyncio
    async def test_create_category_appends_row(self):
        """New categories are appended with a zero balance."""
        client, sheet = _client_with("targets_sheet", self.ROWS)
        category = await GoogleSheetsCatalog(client).create_category("b1", "a1", "Gifts")

        assert category.kind == TargetKind.CATEGORY
        row = sheet.append_row.call_args.args[0]
        assert row[:3] == [category.id, "category", "Gifts"]
        assert row[4] == "0"

    @pytest.mark.asyncio
    async def test_record_income_is_not_retried(self):
        """A failed append is attempted once so income is never recorded twice."""
        client, sheet = _client_with("transactions_sheet", [])
        sheet.append_row.side_effect = RuntimeError("timeout")

        with pytest.raises(RuntimeError):
            await GoogleSheetsCatalog(client).record_income(
                "u1", "a1", 1000, date(2024, 3, 1), "Paycheck distribution"
            )
        sheet.append_row.assert_called_once()


class TestAuditStorage:
    """Append-only audit rows."""

    def test_event_row_round_trip(self):
        """Rows written by to_sheets_row read back as the same event."""
        event = AuditEventBuilder.funds_left_unallocated("plan-1", 500, uuid4())
        parsed = GoogleSheetsAuditStorage._row_to_event(event.to_sheets_row())

        assert parsed.event_id == event.event_id
        assert parsed.details == {"remaining": 500}
        assert parsed.correlation_id == event.correlation_id

    @pytest.mark.asyncio
    async def test_append_failure_returns_false(self):
        """A failing sheet is reported, not raised."""
        storage = GoogleSheetsAuditStorage(MagicMock())
        with patch.object(storage, "_append", side_effect=RuntimeError("quota")):
            assert await storage.append_event(AuditEventBuilder.rule_saved("r1", "o")) is False

    @pytest.mark.asyncio
    async def test_events_by_correlation_id(self):
        """Only matching events, oldest first."""
        cid = uuid4()
        first = AuditEventBuilder.rule_skipped("r1", "o", cid)
        second = AuditEventBuilder.rule_skipped("r2", "o", cid).model_copy(
            update={"timestamp": first.timestamp + timedelta(seconds=1)}
        )
        unrelated = AuditEventBuilder.rule_skipped("r3", "o", uuid4())
        client, _ = _client_with("audit_sheet", [
            ["header"],
            second.to_sheets_row(),
            unrelated.to_sheets_row(),
            first.to_sheets_row(),
        ])

        events = await GoogleSheetsAuditStorage(client).get_events_by_correlation_id(cid)
        assert [e.entity_id for e in events] == ["r1", "r2"]


class TestClient:
    """Worksheet bootstrapping."""

    def test_missing_worksheet_is_created_with_header(self, tmp_path):
        """A sheet that doesn't exist yet is added with its column header."""
        credentials = tmp_path / "credentials.json"
        credentials.write_text("{}")
        client = GoogleSheetsClient(GoogleSheetsSettings(
            credentials_path=str(credentials),
            spreadsheet_id="sheet-id",
        ))
        spreadsheet = MagicMock()
        spreadsheet.worksheet.side_effect = gspread.WorksheetNotFound("Rules")
        client._spreadsheet = spreadsheet

        sheet = client.rules_sheet()

        spreadsheet.add_worksheet.assert_called_once_with(
            title="Rules", rows=1000, cols=len(RULE_COLUMNS)
        )
        assert sheet is spreadsheet.add_worksheet.return_value
        sheet.append_row.assert_called_once_with(RULE_COLUMNS)
