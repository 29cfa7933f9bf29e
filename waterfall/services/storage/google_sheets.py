"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the persistent backend because:
1. Non-technical users can read and tweak their rules directly in Sheets
2. No database setup required
3. Easy to export/migrate later

TRADEOFFS:
- No transactions: an execution applies results one by one, and a
  failure part-way is reported with what was already applied
- Limited query capabilities (we filter in Python)
- Balance increments are read-then-write on a single cell, so two
  executions racing on the same cell can lose an update

The implementation follows the abstract interfaces, so business logic
never sees gspread.
"""

import json
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential

from waterfall.config import GoogleSheetsSettings, get_settings
from waterfall.models.audit import AuditEvent, AuditEventType, AuditSeverity
from waterfall.models.rules import (
    AllocationType,
    CategoryTemplate,
    CategoryType,
    OverflowTargetType,
    Rule,
    TargetType,
    order_rules,
)
from waterfall.models.targets import DueSoonCharge, Target, TargetKind
from waterfall.services.storage.interface import (
    AuditStorageInterface,
    BalanceWriterInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RuleStoreInterface,
    StorageError,
    TargetCatalogInterface,
)


logger = structlog.get_logger(__name__)

# Rows that fail to parse are skipped, never fatal
_ROW_ERRORS = (ValueError, InvalidOperation, ValidationError, json.JSONDecodeError)


RULE_COLUMNS = [
    "id",
    "owner_id",
    "priority_order",
    "target_type",
    "target_id",
    "allocation_type",
    "amount",
    "percentage",
    "due_date_aware",
    "overflow_target_id",
    "overflow_target_type",
    "created_at",
]

TEMPLATE_COLUMNS = [
    "id",
    "income_source_id",
    "category_name",
    "category_type",
    "allocation_type",
    "amount",
    "percentage",
    "priority_order",
    "account_split_id",
]

TARGET_COLUMNS = [
    "id",
    "kind",
    "name",
    "capacity",
    "current_amount",
    "planned_amount",
    "due_date",
    "category_type",
    "user_id",
    "budget_id",
    "account_id",
]

CHARGE_COLUMNS = [
    "id",
    "name",
    "category_id",
    "amount",
    "due_date",
    "user_id",
]

TRANSACTION_COLUMNS = [
    "recorded_at",
    "user_id",
    "account_id",
    "amount",
    "date",
    "description",
    "type",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
]

# 1-based sheet column positions used for single-cell writes
_PRIORITY_COL = RULE_COLUMNS.index("priority_order") + 1
_CURRENT_AMOUNT_COL = TARGET_COLUMNS.index("current_amount") + 1


def _cell(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def _opt_int(value: str) -> Optional[int]:
    return int(value) if value else None


def _opt_str(value) -> str:
    return "" if value is None else str(value)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and lazily creates any worksheet that
    doesn't exist yet, with its header row.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}") from e

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get a worksheet by title, creating it with a header row if missing."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(title=title, rows=rows, cols=len(columns))
            sheet.append_row(columns)
        return sheet

    def rules_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.rules_sheet_name, RULE_COLUMNS)

    def templates_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.templates_sheet_name, TEMPLATE_COLUMNS)

    def targets_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.targets_sheet_name, TARGET_COLUMNS)

    def charges_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.charges_sheet_name, CHARGE_COLUMNS)

    def transactions_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.transactions_sheet_name, TRANSACTION_COLUMNS)

    def audit_sheet(self) -> gspread.Worksheet:
        # More rows for audit log
        return self.get_worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


def _find_row(sheet: gspread.Worksheet, entity_id: str) -> Optional[tuple[int, list]]:
    """Return (1-based row number, row) for the row whose first cell is entity_id."""
    for idx, row in enumerate(sheet.get_all_values()[1:], start=2):  # row 1 is header
        if row and row[0] == entity_id:
            return idx, row
    return None


# =============================================================================
# RULES AND TEMPLATES
# =============================================================================

class GoogleSheetsRuleStore(RuleStoreInterface):
    """
    Rules and category templates, one per row.

    Allocation rules, distribution rules and account splits share the
    Rules sheet; owner_id tells them apart.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @staticmethod
    def _rule_to_row(rule: Rule) -> list:
        return [
            rule.id,
            rule.owner_id,
            str(rule.priority_order),
            rule.target_type.value,
            _opt_str(rule.target_id),
            rule.allocation_type.value,
            _opt_str(rule.amount),
            _opt_str(rule.percentage),
            str(rule.due_date_aware),
            _opt_str(rule.overflow_target_id),
            rule.overflow_target_type.value if rule.overflow_target_type else "",
            rule.created_at.isoformat(),
        ]

    @staticmethod
    def _row_to_rule(row: list) -> Rule:
        created_at = _cell(row, 11)
        overflow_type = _cell(row, 10)
        percentage = _cell(row, 7)
        fields = dict(
            id=_cell(row, 0),
            owner_id=_cell(row, 1),
            priority_order=int(_cell(row, 2, "0")),
            target_type=TargetType(_cell(row, 3)),
            target_id=_cell(row, 4) or None,
            allocation_type=AllocationType(_cell(row, 5)),
            amount=_opt_int(_cell(row, 6)),
            percentage=Decimal(percentage) if percentage else None,
            due_date_aware=_cell(row, 8).lower() == "true",
            overflow_target_id=_cell(row, 9) or None,
            overflow_target_type=OverflowTargetType(overflow_type) if overflow_type else None,
        )
        if created_at:
            fields["created_at"] = datetime.fromisoformat(created_at)
        return Rule(**fields)

    @staticmethod
    def _template_to_row(template: CategoryTemplate) -> list:
        return [
            template.id,
            template.income_source_id,
            template.category_name,
            template.category_type.value,
            template.allocation_type.value,
            _opt_str(template.amount),
            _opt_str(template.percentage),
            str(template.priority_order),
            _opt_str(template.account_split_id),
        ]

    @staticmethod
    def _row_to_template(row: list) -> CategoryTemplate:
        percentage = _cell(row, 6)
        return CategoryTemplate(
            id=_cell(row, 0),
            income_source_id=_cell(row, 1),
            category_name=_cell(row, 2),
            category_type=CategoryType(_cell(row, 3, CategoryType.EXPENSE.value)),
            allocation_type=AllocationType(_cell(row, 4)),
            amount=_opt_int(_cell(row, 5)),
            percentage=Decimal(percentage) if percentage else None,
            priority_order=int(_cell(row, 7, "0")),
            account_split_id=_cell(row, 8) or None,
        )

    def _load_rules(self) -> list[Rule]:
        rules = []
        for row in self._client.rules_sheet().get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                rules.append(self._row_to_rule(row))
            except _ROW_ERRORS as e:
                logger.warning("malformed_rule_row", rule_id=row[0], error=str(e))
        return rules

    async def list_rules(self, owner_id: str) -> list[Rule]:
        try:
            rules = [r for r in self._load_rules() if r.owner_id == owner_id]
        except gspread.exceptions.APIError as e:
            raise StorageError(f"Failed to list rules: {e}") from e
        # Sheet order is creation order, so the stable sort keeps the tie-break
        return order_rules(rules)

    async def get_rule(self, rule_id: str) -> Optional[Rule]:
        try:
            found = _find_row(self._client.rules_sheet(), rule_id)
        except gspread.exceptions.APIError as e:
            raise StorageError(f"Failed to get rule: {e}") from e
        return self._row_to_rule(found[1]) if found else None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_rule(self, rule: Rule) -> Rule:
        try:
            sheet = self._client.rules_sheet()
            row = self._rule_to_row(rule)
            found = _find_row(sheet, rule.id)
            if found:
                sheet.update(range_name=f"A{found[0]}", values=[row], value_input_option="RAW")
            else:
                sheet.append_row(row, value_input_option="RAW")
            return rule
        except gspread.exceptions.APIError as e:
            raise StorageError(f"Failed to save rule: {e}") from e

    async def delete_rule(self, rule_id: str) -> bool:
        try:
            sheet = self._client.rules_sheet()
            found = _find_row(sheet, rule_id)
            if not found:
                return False
            sheet.delete_rows(found[0])
            return True
        except gspread.exceptions.APIError as e:
            raise StorageError(f"Failed to delete rule: {e}") from e

    async def reorder_rules(self, ordering: list[tuple[str, int]]) -> None:
        try:
            sheet = self._client.rules_sheet()
            row_numbers = {
                row[0]: idx
                for idx, row in enumerate(sheet.get_all_values()[1:], start=2)
                if row and row[0]
            }
            missing = [rule_id for rule_id, _ in ordering if rule_id not in row_numbers]
            if missing:
                raise NotFoundError(f"Rules not found: {', '.join(missing)}")

            for rule_id, priority in ordering:
                sheet.update_cell(row_numbers[rule_id], _PRIORITY_COL, str(priority))
        except gspread.exceptions.APIError as e:
            raise StorageError(f"Failed to reorder rules: {e}") from e

    async def list_templates(self, income_source_id: str) -> list[CategoryTemplate]:
        try:
            rows = self._client.templates_sheet().get_all_values()[1:]
        except gspread.exceptions.APIError as e:
            raise StorageError(f"Failed to list templates: {e}") from e

        templates = []
        for row in rows:
            if not row or not row[0] or _cell(row, 1) != income_source_id:
                continue
            try:
                templates.append(self._row_to_template(row))
            except _ROW_ERRORS as e:
                logger.warning("malformed_template_row", template_id=row[0], error=str(e))
        return order_rules(templates)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_template(self, template: CategoryTemplate) -> CategoryTemplate:
        try:
            sheet = self._client.templates_sheet()
            row = self._template_to_row(template)
            found = _find_row(sheet, template.id)
            if found:
                sheet.update(range_name=f"A{found[0]}", values=[row], value_input_option="RAW")
            else:
                sheet.append_row(row, value_input_option="RAW")
            return template
        except gspread.exceptions.APIError as e:
            raise StorageError(f"Failed to save template: {e}") from e


# =============================================================================
# TARGETS AND BALANCES
# =============================================================================

class GoogleSheetsCatalog(TargetCatalogInterface, BalanceWriterInterface):
    """
    Accounts, categories and goals live in one Targets sheet, keyed by kind.

    current_amount holds the account balance, the category's available
    amount or the goal's saved amount.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @staticmethod
    def _target_to_row(target: Target) -> list:
        return [
            target.id,
            target.kind.value,
            target.name,
            _opt_str(target.capacity),
            str(target.current_amount),
            str(target.planned_amount),
            target.due_date.isoformat() if target.due_date else "",
            target.category_type.value if target.category_type else "",
            _opt_str(target.user_id),
            _opt_str(target.budget_id),
            _opt_str(target.account_id),
        ]

    @staticmethod
    def _row_to_target(row: list) -> Target:
        due_date = _cell(row, 6)
        category_type = _cell(row, 7)
        return Target(
            id=_cell(row, 0),
            kind=TargetKind(_cell(row, 1)),
            name=_cell(row, 2),
            capacity=_opt_int(_cell(row, 3)),
            current_amount=int(_cell(row, 4, "0")),
            planned_amount=int(_cell(row, 5, "0")),
            due_date=date.fromisoformat(due_date) if due_date else None,
            category_type=CategoryType(category_type) if category_type else None,
            user_id=_cell(row, 8) or None,
            budget_id=_cell(row, 9) or None,
            account_id=_cell(row, 10) or None,
        )

    @staticmethod
    def _row_to_charge(row: list) -> DueSoonCharge:
        return DueSoonCharge(
            id=_cell(row, 0),
            name=_cell(row, 1),
            category_id=_cell(row, 2) or None,
            amount=int(_cell(row, 3, "0")),
            due_date=date.fromisoformat(_cell(row, 4)),
            user_id=_cell(row, 5) or None,
        )

    def _load_targets(self, kind: TargetKind) -> list[Target]:
        try:
            rows = self._client.targets_sheet().get_all_values()[1:]
        except gspread.exceptions.APIError as e:
            raise StorageError(f"Failed to read targets: {e}") from e

        targets = []
        for row in rows:
            if not row or not row[0] or _cell(row, 1) != kind.value:
                continue
            try:
                targets.append(self._row_to_target(row))
            except _ROW_ERRORS as e:
                logger.warning("malformed_target_row", target_id=row[0], error=str(e))
        return targets

    def _get(self, target_id: str, kind: TargetKind) -> Optional[Target]:
        return next((t for t in self._load_targets(kind) if t.id == target_id), None)

    async def get_category(self, category_id: str) -> Optional[Target]:
        return self._get(category_id, TargetKind.CATEGORY)

    async def get_goal(self, goal_id: str) -> Optional[Target]:
        return self._get(goal_id, TargetKind.GOAL)

    async def get_account(self, account_id: str) -> Optional[Target]:
        return self._get(account_id, TargetKind.ACCOUNT)

    async def list_categories_for_budget(self, budget_id: str) -> list[Target]:
        return [t for t in self._load_targets(TargetKind.CATEGORY) if t.budget_id == budget_id]

    async def list_goals_for_user(self, user_id: str) -> list[Target]:
        return [t for t in self._load_targets(TargetKind.GOAL) if t.user_id == user_id]

    async def list_due_soon_charges(
        self,
        user_id: str,
        window_end: date,
    ) -> list[DueSoonCharge]:
        try:
            rows = self._client.charges_sheet().get_all_values()[1:]
        except gspread.exceptions.APIError as e:
            raise StorageError(f"Failed to read charges: {e}") from e

        charges = []
        for row in rows:
            if not row or not row[0] or _cell(row, 5) != user_id:
                continue
            try:
                charge = self._row_to_charge(row)
            except _ROW_ERRORS as e:
                logger.warning("malformed_charge_row", charge_id=row[0], error=str(e))
                continue
            if charge.due_date <= window_end:
                charges.append(charge)
        return charges

    async def create_category(
        self,
        budget_id: str,
        account_id: str,
        name: str,
        category_type: CategoryType = CategoryType.EXPENSE,
    ) -> Target:
        existing = await self.list_categories_for_budget(budget_id)
        if any(c.account_id == account_id and c.name == name for c in existing):
            raise DuplicateError(f"Category already exists: {name}")

        category = Target(
            kind=TargetKind.CATEGORY,
            name=name,
            budget_id=budget_id,
            account_id=account_id,
            category_type=category_type,
        )
        try:
            self._client.targets_sheet().append_row(
                self._target_to_row(category),
                value_input_option="RAW",
            )
        except gspread.exceptions.APIError as e:
            raise StorageError(f"Failed to create category: {e}") from e
        return category

    def _increment(self, target_id: str, kind: TargetKind, delta: int) -> int:
        # Not retried: repeating a write that already landed would double-count
        try:
            sheet = self._client.targets_sheet()
            found = _find_row(sheet, target_id)
            if not found or _cell(found[1], 1) != kind.value:
                raise NotFoundError(f"{kind.value.capitalize()} not found: {target_id}")

            # Re-read the single cell right before writing
            current = sheet.cell(found[0], _CURRENT_AMOUNT_COL).value
            new_value = int(current or 0) + delta
            sheet.update_cell(found[0], _CURRENT_AMOUNT_COL, str(new_value))
            return new_value
        except gspread.exceptions.APIError as e:
            raise StorageError(f"Failed to update {kind.value} {target_id}: {e}") from e

    async def increment_category_available(self, category_id: str, delta: int) -> int:
        return self._increment(category_id, TargetKind.CATEGORY, delta)

    async def increment_goal_current(self, goal_id: str, delta: int) -> int:
        return self._increment(goal_id, TargetKind.GOAL, delta)

    async def increment_account_balance(self, account_id: str, delta: int) -> int:
        return self._increment(account_id, TargetKind.ACCOUNT, delta)

    async def record_income(
        self,
        user_id: str,
        account_id: str,
        amount: int,
        on_date: date,
        description: str,
    ) -> None:
        # Not retried: a repeated append would record the income twice
        try:
            self._client.transactions_sheet().append_row(
                [
                    datetime.utcnow().isoformat(),
                    user_id,
                    account_id,
                    str(amount),
                    on_date.isoformat(),
                    description,
                    "income",
                ],
                value_input_option="RAW",
            )
        except gspread.exceptions.APIError as e:
            raise StorageError(f"Failed to record income: {e}") from e


# =============================================================================
# AUDIT
# =============================================================================

class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @staticmethod
    def _row_to_event(row: list) -> AuditEvent:
        correlation_id = _cell(row, 6)
        details = _cell(row, 8)
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            entity_type=_cell(row, 4) or None,
            entity_id=_cell(row, 5) or None,
            correlation_id=UUID(correlation_id) if correlation_id else None,
            description=_cell(row, 7),
            details=json.loads(details) if details else {},
            error_message=_cell(row, 9) or None,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append(self, row: list) -> None:
        self._client.audit_sheet().append_row(row, value_input_option="RAW")

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Failures are logged, never raised."""
        try:
            self._append(event.to_sheets_row())
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.warning(
                "audit_write_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    def _load_events(self) -> list[AuditEvent]:
        try:
            rows = self._client.audit_sheet().get_all_values()[1:]
        except gspread.exceptions.APIError as e:
            raise StorageError(f"Failed to get audit events: {e}") from e

        events = []
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except _ROW_ERRORS as e:
                logger.warning("malformed_audit_row", event_id=row[0], error=str(e))
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._load_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = self._load_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
