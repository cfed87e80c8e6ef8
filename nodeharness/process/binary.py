import os
import shutil

from nodeharness.env import Env
from nodeharness.errors import NodeConfigurationError


def binary_path(name: str, env: Env) -> str:
    envar_name = f"NODE_HARNESS_{name.upper()}_PATH"

    if os.sep in name:
        path: str | None = name

    else:
        path = getattr(env, envar_name, None) or os.getenv(envar_name)

    if path is None:
        path = shutil.which(name)

    if path is None:
        raise NodeConfigurationError(
            f"Err. - could not find {name} binary. Set {envar_name} or add {name} to PATH."
        )

    if not os.access(path, os.X_OK):
        raise NodeConfigurationError(
            f"Err. - {name} binary at {path} is not executable"
        )

    return path
