from enum import Enum


class ProcessStatus(Enum):
    CREATED = "CREATED"
    RUNNING = "RUNNING"
    EXITED = "EXITED"
    STOPPED = "STOPPED"
    FAILED = "FAILED"
