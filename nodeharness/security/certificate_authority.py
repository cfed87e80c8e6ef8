from typing import Protocol

from nodeharness.scope import TestScope


class CertificateAuthority(Protocol):
    """
    The identity-issuing service a node and its authenticated clients
    bootstrap against. Nodes only receive its address, trust domain and
    trust anchors. Clients additionally ask it to sign their workload
    certificates.
    """

    @property
    def address(self) -> str: ...

    @property
    def port(self) -> int: ...

    @property
    def trust_domain(self) -> str: ...

    @property
    def namespace(self) -> str: ...

    @property
    def trust_anchors(self) -> bytes: ...

    def trust_anchors_file(self, scope: TestScope) -> str: ...

    async def sign_certificate(
        self,
        csr_pem: bytes,
        app_id: str,
        namespace: str,
    ) -> bytes: ...
