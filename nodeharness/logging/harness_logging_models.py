from .models import Entry, LogLevel


class NodeTrace(Entry, kw_only=True):
    node_id: str
    namespace: str
    port: int
    level: LogLevel = LogLevel.TRACE

class NodeDebug(Entry, kw_only=True):
    node_id: str
    namespace: str
    port: int
    level: LogLevel = LogLevel.DEBUG

class NodeInfo(Entry, kw_only=True):
    node_id: str
    namespace: str
    port: int
    level: LogLevel = LogLevel.INFO

class NodeError(Entry, kw_only=True):
    node_id: str
    namespace: str
    port: int
    level: LogLevel = LogLevel.ERROR

class ProcessDebug(Entry, kw_only=True):
    command: str
    level: LogLevel = LogLevel.DEBUG

class ProcessInfo(Entry, kw_only=True):
    command: str
    level: LogLevel = LogLevel.INFO

class ProcessError(Entry, kw_only=True):
    command: str
    level: LogLevel = LogLevel.ERROR

class SecurityDebug(Entry, kw_only=True):
    app_id: str
    trust_domain: str
    level: LogLevel = LogLevel.DEBUG

class SecurityInfo(Entry, kw_only=True):
    app_id: str
    trust_domain: str
    level: LogLevel = LogLevel.INFO

class SecurityError(Entry, kw_only=True):
    app_id: str
    trust_domain: str
    level: LogLevel = LogLevel.ERROR
