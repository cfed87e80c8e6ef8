from typing import AsyncGenerator

import pytest
import pytest_asyncio

from nodeharness.env import Env, load_env
from nodeharness.scope import TestScope


@pytest.fixture
def harness_env() -> Env:
    return load_env(Env)


@pytest_asyncio.fixture
async def test_scope(request: pytest.FixtureRequest) -> AsyncGenerator[TestScope, None]:
    scope = TestScope(name=request.node.name)

    yield scope

    await scope.close()
