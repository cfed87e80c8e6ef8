from dataclasses import dataclass, field
from typing import Callable

from nodeharness.errors import NodeConfigurationError


@dataclass(slots=True)
class ProcessOptions:
    env_vars: dict[str, str] = field(default_factory=dict)
    stdout_path: str | None = None
    stderr_path: str | None = None
    exit_code: int | None = None
    working_directory: str | None = None


ProcessOption = Callable[[ProcessOptions], None]


def with_env_vars(*pairs: str) -> ProcessOption:
    if len(pairs) % 2 != 0:
        raise NodeConfigurationError(
            f"Err. - environment variables must be given as key/value pairs, got {len(pairs)} values"
        )

    def apply(options: ProcessOptions):
        for key, value in zip(pairs[::2], pairs[1::2]):
            options.env_vars[key] = value

    return apply


def with_stdout(path: str) -> ProcessOption:
    def apply(options: ProcessOptions):
        options.stdout_path = path

    return apply


def with_stderr(path: str) -> ProcessOption:
    def apply(options: ProcessOptions):
        options.stderr_path = path

    return apply


def with_exit_code(code: int) -> ProcessOption:
    def apply(options: ProcessOptions):
        options.exit_code = code

    return apply


def with_working_directory(path: str) -> ProcessOption:
    def apply(options: ProcessOptions):
        options.working_directory = path

    return apply
