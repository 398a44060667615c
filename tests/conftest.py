import uuid

import pytest
import pytest_asyncio
from tortoise import Tortoise

from recipe_inventory.core.db import MODELS_MODULES


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory SQLite database per test."""
    await Tortoise.init(db_url="sqlite://:memory:", modules={"models": MODELS_MODULES})
    await Tortoise.generate_schemas()
    yield
    await Tortoise.close_connections()


@pytest.fixture
def business_id():
    return uuid.uuid4()


@pytest.fixture
def branch_id():
    return uuid.uuid4()
