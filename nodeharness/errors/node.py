"""
Failure taxonomy for the scheduler node harness.

Every error raised by the harness aborts the calling test. None of them are
meant to be caught by test code: they signal a broken fixture, a broken test
or an unusable endpoint.
"""


class NodeHarnessError(Exception):
    pass


class NodeConfigurationError(NodeHarnessError):
    """
    Raised at construction time for test-authoring bugs, such as a
    malformed cluster topology entry or a missing security context.
    """
    pass


class NodeLifecycleError(NodeHarnessError):
    """
    Raised when a node is driven out of order: started twice, or
    waited on before it was started.
    """
    pass


class NodeReadinessError(NodeHarnessError):
    """
    Raised when the health endpoint did not report ready within the
    polling window.
    """
    pass


class NodeTransportError(NodeHarnessError):
    """
    Raised for failed dials, non-200 responses and HTTP transport errors.
    """
    pass


class MetricsParseError(NodeTransportError):
    pass


class ProcessSupervisorError(NodeHarnessError):
    pass


class SecuritySessionError(NodeHarnessError):
    pass


class ScopeClosedError(NodeHarnessError):
    pass
