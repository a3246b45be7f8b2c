"""Host entity models (cars, expenses) and the ORM registry."""

from expense_kernel.models.car import CarModel, CarStatus
from expense_kernel.models.expense import ExpenseModel, ExpenseStatus


def import_all_orm_models() -> None:
    """Import every ORM module so ``Base.metadata`` holds all tables.

    Idempotent -- repeated calls are harmless.
    """
    import expense_kernel.models.car  # noqa: F401
    import expense_kernel.models.expense  # noqa: F401
    import expense_schedules.models  # noqa: F401


__all__ = [
    "CarModel",
    "CarStatus",
    "ExpenseModel",
    "ExpenseStatus",
    "import_all_orm_models",
]
