from __future__ import annotations

import sys

from alembic.autogenerate import api as ag_api
from alembic.runtime.migration import MigrationContext

from eventlottery.db.engine import make_engine
from eventlottery.models import Base


def _print_ops(ops, indent: int = 0) -> None:
    prefix = "  " * indent
    for op in ops:
        print(f"{prefix}- {op}")
        nested = getattr(op, "ops", None)
        if nested:
            _print_ops(nested, indent + 1)


def check(url: str | None = None) -> int:
    """Compare the lottery models with the live schema.

    Returns 0 when they match, 1 when they differ and 2 on error.
    """
    engine = make_engine(database_url=url)
    shown = engine.url.render_as_string(hide_password=True)
    try:
        with engine.connect() as connection:
            context = MigrationContext.configure(
                connection=connection,
                opts={
                    "compare_type": True,
                    "compare_server_default": True,
                    "render_as_batch": connection.dialect.name == "sqlite",
                },
            )
            upgrade_ops = ag_api.produce_migrations(context, Base.metadata).upgrade_ops
    except Exception as exc:
        print(f"Schema drift check: ERROR for {shown}: {exc}", file=sys.stderr)
        return 2
    finally:
        engine.dispose()

    if upgrade_ops is None:
        print(f"Schema drift check: ERROR for {shown}: no upgrade ops produced.")
        return 2
    if upgrade_ops.is_empty():
        print(f"Schema drift check: OK for {shown}.")
        return 0
    print(f"Schema drift check: FAILED for {shown}. Differences:")
    _print_ops(upgrade_ops.ops or [])
    return 1


def main() -> int:
    return check(sys.argv[1] if len(sys.argv) > 1 else None)


if __name__ == "__main__":
    raise SystemExit(main())
