"""Transaction handler (manage_transactions)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from pydantic import Field

from src.core.handlers.base import DateStr, EntityHandler, ToolArgs, today

if TYPE_CHECKING:
    from src.ports.store_port import Store


class TransactionArgs(ToolArgs):
    action: Literal["create", "update", "delete", "list"]
    transaction_id: str | None = None
    type: Literal["income", "expense"] | None = None
    amount: float | None = Field(default=None, gt=0)
    category: str | None = None
    description: str | None = None
    date: DateStr | None = None
    currency: str | None = None
    project_id: str | None = None


def net_total(rows: list[dict]) -> float:
    """Income minus expenses across rows."""
    return sum(r["amount"] if r["type"] == "income" else -r["amount"] for r in rows)


class TransactionHandler(EntityHandler):
    table = "transactions"
    entity = "Transaction"
    plural = "transactions"
    id_field = "transaction_id"
    args_model = TransactionArgs
    name_field = None
    required = ("type", "amount", "category")
    defaults = {"currency": "USD"}
    references = {"project_id": ("projects", "Project")}
    list_filters = ("type", "category", "project_id")
    list_order = ["-date", "-created_at"]
    list_limit = 20

    def _missing_message(self) -> str:
        return "Type, amount, and category are required to create a transaction"

    def _prepare_insert(self, store: Store, user_id: str, values: dict) -> dict:
        values.setdefault("date", today().isoformat())
        return values

    def _created_message(self, row: dict) -> str:
        return f"Created {row['type']}: {row['amount']:g} {row['currency']} for {row['category']}"

    def _updated_message(self, row: dict) -> str:
        return "Transaction updated"

    def _list_message(self, rows: list[dict]) -> str:
        return f"Found {len(rows)} transactions (net: {net_total(rows):g})"
