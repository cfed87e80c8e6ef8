import aiohttp

from nodeharness.env import Env, TimeParser
from nodeharness.scope import TestScope


def http_session(
    scope: TestScope,
    env: Env | None = None,
) -> aiohttp.ClientSession:
    if env is None:
        env = Env()

    session = aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(
            total=TimeParser(env.NODE_HARNESS_HTTP_TIMEOUT).time,
        ),
    )

    scope.add_cleanup(session.close)

    return session
