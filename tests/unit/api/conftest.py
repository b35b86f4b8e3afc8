"""App and client fixtures for API tests.

ASGITransport does not run the lifespan, so the fixture creates the schema
itself and leaves the GC scheduler unset unless a test installs one.
"""

from __future__ import annotations

import httpx
import pytest

from dinein.managers.api_key import ApiKeyAttributes, ApiKeyManager
from dinein.managers.staff import StaffManager
from dinein.managers.table import TableManager
from dinein.models.staff import StaffRole


@pytest.fixture
async def app(settings):
    from dinein.main import create_app

    app = create_app(settings)
    await app.state.database.init()
    yield app
    await app.state.database.close()


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def seed(app):
    """Helpers writing straight to the app database."""

    class Seeder:
        async def staff_key(
            self,
            name: str,
            role: StaffRole,
            attributes: ApiKeyAttributes | None = None,
        ) -> str:
            async with app.state.database.session() as db:
                staff = await StaffManager(db).create(name, role)
                return await ApiKeyManager(db).create(staff.id, attributes)

        async def tables(self, *numbers: int) -> list[str]:
            async with app.state.database.session() as db:
                mgr = TableManager(db)
                return [(await mgr.create(n)).id for n in numbers]

    return Seeder()


@pytest.fixture
async def admin_key(seed) -> str:
    return await seed.staff_key("root", StaffRole.ADMIN)


@pytest.fixture
async def waiter_key(seed) -> str:
    return await seed.staff_key("wendy", StaffRole.WAITER)


@pytest.fixture
async def chef_key(seed) -> str:
    return await seed.staff_key("carl", StaffRole.CHEF)
