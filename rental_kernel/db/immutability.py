"""
ORM-level immutability enforcement.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                  | Rule
------------------------|---------------------------------------------------
RentObligationModel     | Never deleted (cancel it instead)
RentalContractModel     | Term fields frozen once any obligation exists;
                        | status stays mutable
Append-only models      | No UPDATE, no per-row DELETE.  Registered by outer
(e.g. batch audit log)  | packages with ``@append_only``.  Bulk retention
                        | purges (``session.execute(delete(...))``) do not
                        | go through mapper events and stay allowed.

===============================================================================
HOW IT WORKS
===============================================================================

Mapper ``before_update`` / ``before_delete`` events fire during flush,
before SQL reaches the database.  A failing check raises
ImmutabilityViolationError and the flush is aborted.

Registered by ``create_database_engine()``, so every engine built through
rental_kernel.db enforces the rules.

Tests that need to break the rules call
``unregister_immutability_listeners()`` and register again afterwards.
"""

from sqlalchemy import event, func, select
from sqlalchemy.orm.attributes import get_history

from rental_kernel.exceptions import ImmutabilityViolationError
from rental_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# (model class, entity type) pairs registered via @append_only
_APPEND_ONLY_MODELS: list[tuple[type, str]] = []

# True between register_immutability_listeners() and unregister
_registered = False


def append_only(entity_type: str):
    """Class decorator marking a model as append-only."""

    def decorator(model_cls: type) -> type:
        _APPEND_ONLY_MODELS.append((model_cls, entity_type))
        if _registered:
            _attach_append_only(model_cls, entity_type)
        return model_cls

    return decorator


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "attempted_operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _make_append_only_checks(entity_type: str):
    def check_update(mapper, connection, target):
        raise _blocked(
            entity_type, str(target.id), "UPDATE",
            f"{entity_type} rows are append-only",
        )

    def check_delete(mapper, connection, target):
        raise _blocked(
            entity_type, str(target.id), "DELETE",
            f"{entity_type} rows are only removed by the retention purge",
        )

    return check_update, check_delete


# Listener functions per append-only class, so they can be removed again
_append_only_listeners: dict[type, tuple] = {}


def _attach_append_only(model_cls: type, entity_type: str) -> None:
    if model_cls in _append_only_listeners:
        return
    check_update, check_delete = _make_append_only_checks(entity_type)
    event.listen(model_cls, "before_update", check_update)
    event.listen(model_cls, "before_delete", check_delete)
    _append_only_listeners[model_cls] = (check_update, check_delete)


def _check_obligation_delete(mapper, connection, target):
    raise _blocked(
        "RentObligation", str(target.id), "DELETE",
        "Rent obligations are never deleted; cancel them instead",
    )


def _check_contract_terms(mapper, connection, target):
    from rental_kernel.models.contract import CONTRACT_TERM_FIELDS
    from rental_kernel.models.obligation import RentObligationModel

    changed = [
        name for name in CONTRACT_TERM_FIELDS
        if get_history(target, name).has_changes()
    ]
    if not changed:
        return

    table = RentObligationModel.__table__
    obligation_count = connection.execute(
        select(func.count())
        .select_from(table)
        .where(table.c.contract_id == target.id)
    ).scalar_one()

    if obligation_count:
        raise _blocked(
            "RentalContract", str(target.id), "UPDATE",
            f"Contract terms are frozen once its schedule exists "
            f"(attempted: {', '.join(changed)})",
        )


def register_immutability_listeners():
    """
    Register all immutability listeners.

    Runs whenever an engine is created, so library callers get the rules
    without extra setup.  Append-only models imported later are attached
    as they are declared.  Registering twice is harmless.
    """
    global _registered
    from rental_kernel.models.contract import RentalContractModel
    from rental_kernel.models.obligation import RentObligationModel

    if not event.contains(RentObligationModel, "before_delete", _check_obligation_delete):
        event.listen(RentObligationModel, "before_delete", _check_obligation_delete)
    if not event.contains(RentalContractModel, "before_update", _check_contract_terms):
        event.listen(RentalContractModel, "before_update", _check_contract_terms)

    for model_cls, entity_type in _APPEND_ONLY_MODELS:
        _attach_append_only(model_cls, entity_type)
    _registered = True


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove all immutability listeners.

    WARNING: Only for tests that must violate the rules on purpose.
    """
    global _registered
    from rental_kernel.models.contract import RentalContractModel
    from rental_kernel.models.obligation import RentObligationModel

    _safe_remove_listener(RentObligationModel, "before_delete", _check_obligation_delete)
    _safe_remove_listener(RentalContractModel, "before_update", _check_contract_terms)

    for model_cls, (check_update, check_delete) in list(_append_only_listeners.items()):
        _safe_remove_listener(model_cls, "before_update", check_update)
        _safe_remove_listener(model_cls, "before_delete", check_delete)
        del _append_only_listeners[model_cls]
    _registered = False
