"""
Module ORM Registry (``rental_modules._orm_registry``).

Responsibility
--------------
Ensure every module-level SQLAlchemy ORM model is imported so that
``Base.metadata`` contains its table definition before tables are
created.

Architecture position
---------------------
**Modules layer** -- utility.  ``rental_kernel.db.engine.create_tables``
imports it lazily; nothing else in the kernel does.

Usage
-----
Scripts and ``tests/conftest.py`` call ``create_all_tables()`` (engine
already initialized) or ``import_all_orm_models()`` followed by
``Base.metadata.create_all(engine)``.
"""


def import_all_orm_models() -> None:
    """Import every ``rental_modules.*.orm`` module.  Idempotent."""
    # fmt: off
    import rental_modules.rentals.orm  # noqa: F401
    import rental_modules.long_term.orm  # noqa: F401
    # fmt: on


def create_all_tables() -> None:
    """
    Create every rental table.

    Preconditions:
        Engine must be initialized via ``init_engine_from_url()``.
    """
    from rental_kernel.db.engine import create_tables

    create_tables()
