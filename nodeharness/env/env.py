from __future__ import annotations
from pydantic import BaseModel, StrictFloat, StrictStr
from typing import Callable, Dict, Literal, Union

PrimaryType = Union[str, int, float, bytes, bool]


class Env(BaseModel):
    NODE_HARNESS_SCHEDULER_PATH: StrictStr | None = None
    NODE_HARNESS_LOG_LEVEL: StrictStr = "info"
    NODE_HARNESS_LOG_OUTPUT: Literal["stdout", "stderr"] = "stderr"
    NODE_HARNESS_LOGS_DIRECTORY: StrictStr | None = None

    # Readiness polling
    NODE_HARNESS_HEALTH_TIMEOUT: StrictStr = "15s"
    NODE_HARNESS_HEALTH_POLL_INTERVAL: StrictStr = "10ms"

    # Transport
    NODE_HARNESS_DIAL_TIMEOUT: StrictStr = "10s"
    NODE_HARNESS_HTTP_TIMEOUT: StrictStr = "5s"

    # Process supervision
    NODE_HARNESS_PROCESS_STOP_TIMEOUT: StrictStr = "10s"

    # Workload credentials
    NODE_HARNESS_CREDENTIAL_TTL: StrictStr = "1h"
    NODE_HARNESS_CREDENTIAL_REFRESH_RATIO: StrictFloat = 0.5

    @classmethod
    def types_map(cls) -> Dict[str, Callable[[str], PrimaryType]]:
        return {
            "NODE_HARNESS_SCHEDULER_PATH": str,
            "NODE_HARNESS_LOG_LEVEL": str,
            "NODE_HARNESS_LOG_OUTPUT": str,
            "NODE_HARNESS_LOGS_DIRECTORY": str,
            "NODE_HARNESS_HEALTH_TIMEOUT": str,
            "NODE_HARNESS_HEALTH_POLL_INTERVAL": str,
            "NODE_HARNESS_DIAL_TIMEOUT": str,
            "NODE_HARNESS_HTTP_TIMEOUT": str,
            "NODE_HARNESS_PROCESS_STOP_TIMEOUT": str,
            "NODE_HARNESS_CREDENTIAL_TTL": str,
            "NODE_HARNESS_CREDENTIAL_REFRESH_RATIO": float,
        }
