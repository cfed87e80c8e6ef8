from dataclasses import dataclass

from .certificate_authority import CertificateAuthority


@dataclass(slots=True)
class SecurityOptions:
    sentry_address: str
    control_plane_trust_domain: str
    control_plane_namespace: str
    trust_anchors_file: str
    app_id: str
    authority: CertificateAuthority
    namespace: str = "default"
    mtls_enabled: bool = True
