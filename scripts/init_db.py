from __future__ import annotations

import asyncio

from postureguard.core.logging import configure_logging
from postureguard.persistence.db import create_all, engine


async def _init_db() -> None:
    # Local bootstrap only; deployed databases are migrated with alembic.
    await create_all()
    await engine.dispose()
    print(f"tables_created database={engine.url.render_as_string(hide_password=True)}")


def main() -> None:
    configure_logging()
    asyncio.run(_init_db())


if __name__ == "__main__":
    main()
