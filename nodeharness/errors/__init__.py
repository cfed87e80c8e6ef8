from .node import (
    MetricsParseError as MetricsParseError,
    NodeConfigurationError as NodeConfigurationError,
    NodeHarnessError as NodeHarnessError,
    NodeLifecycleError as NodeLifecycleError,
    NodeReadinessError as NodeReadinessError,
    NodeTransportError as NodeTransportError,
    ProcessSupervisorError as ProcessSupervisorError,
    ScopeClosedError as ScopeClosedError,
    SecuritySessionError as SecuritySessionError,
)
