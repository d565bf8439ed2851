import asyncio
import os
import tempfile

import pytest

_DB_DIR = tempfile.mkdtemp(prefix="impress-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/api.db"
os.environ.setdefault("BASIC_AUTH_USERNAME", "admin")
os.environ.setdefault("BASIC_AUTH_PASSWORD", "secret")

from impress.config.database import init_db, make_engine, make_session_factory  # noqa: E402


@pytest.fixture
def db_run(tmp_path):
    """Run `scenario(session)` against a fresh SQLite database."""
    url = f"sqlite+aiosqlite:///{tmp_path}/store.db"

    def run(scenario):
        async def main():
            engine = make_engine(url)
            try:
                assert await init_db(engine)
                factory = make_session_factory(engine)
                async with factory() as session:
                    return await scenario(session)
            finally:
                await engine.dispose()

        return asyncio.run(main())

    return run
