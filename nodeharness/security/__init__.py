from .certificate_authority import CertificateAuthority as CertificateAuthority
from .local_certificate_authority import (
    LocalCertificateAuthority as LocalCertificateAuthority,
)
from .security_handler import (
    PeerIdentity as PeerIdentity,
    SecurityHandler as SecurityHandler,
    WorkloadCredentials as WorkloadCredentials,
)
from .security_options import SecurityOptions as SecurityOptions
from .security_provider import SecurityProvider as SecurityProvider
from .security_session import SecuritySession as SecuritySession
from .spiffe_id import SpiffeID as SpiffeID
