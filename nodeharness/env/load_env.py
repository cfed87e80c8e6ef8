import os
from typing import Callable, TypeVar

from dotenv import dotenv_values

from .env import Env, PrimaryType

T = TypeVar("T", bound=Env)


def _convert(
    source: dict[str, str | None],
    converters: dict[str, Callable[[str], PrimaryType]],
) -> dict[str, PrimaryType]:
    return {
        name: converters[name](value)
        for name, value in source.items()
        if name in converters and value
    }


def load_env(
    default: type[T],
    env_file: str | None = None,
    override: T | None = None,
) -> T:
    """
    Build the harness Env from, in increasing precedence: the process
    environment, the dotenv file (".env" unless given) and the fields
    explicitly set on the override.
    """

    converters = default.types_map()

    values = _convert(dict(os.environ), converters)

    if env_file is None:
        env_file = ".env"

    if os.path.isfile(env_file):
        values.update(_convert(dotenv_values(dotenv_path=env_file), converters))

    if override is None:
        return default(**values)

    values.update(override.model_dump(exclude_unset=True, exclude_none=True))

    return type(override)(**values)
