# Overview: ORM listeners that refuse changes to audit records.

"""
Append-only records

- Movement (stock_movements): never updated, never deleted.
- SaleCancellation: never updated, never deleted.
- ProductionRun: only `status` may change after insert.

The listeners fire on flush, before any SQL is emitted, so a violating
flush leaves the database untouched. Bulk Core statements bypass them;
the service layer never issues those against these tables.
"""

from __future__ import annotations

from sqlalchemy import event, inspect

from .errors import ImmutableRecordError
from .models import Movement, ProductionRun, SaleCancellation


_installed = False


def _refuse(action: str):
    def listener(mapper, connection, target):
        raise ImmutableRecordError(
            f"{type(target).__name__} #{target.id} ne peut pas être modifié",
            details={"table": mapper.local_table.name, "action": action, "id": target.id},
        )
    return listener


def _changed_columns(target) -> set[str]:
    state = inspect(target)
    changed = set()
    for attr in state.mapper.column_attrs:
        if state.attrs[attr.key].history.has_changes():
            changed.add(attr.key)
    return changed


def _production_update(mapper, connection, target):
    forbidden = _changed_columns(target) - {"status"}
    if forbidden:
        raise ImmutableRecordError(
            f"Production #{target.id}: seul le statut peut être modifié",
            details={"table": "productions", "fields": sorted(forbidden), "id": target.id},
        )


def install_immutability_listeners() -> None:
    """Register listeners once per process."""
    global _installed
    if _installed:
        return

    for model in (Movement, SaleCancellation):
        event.listen(model, "before_update", _refuse("update"))
        event.listen(model, "before_delete", _refuse("delete"))

    event.listen(ProductionRun, "before_update", _production_update)
    event.listen(ProductionRun, "before_delete", _refuse("delete"))

    _installed = True
