import asyncio
import os
import ssl
import tempfile
from dataclasses import dataclass

import grpc
from cryptography import x509
from cryptography.x509.oid import ExtensionOID

from nodeharness.errors import NodeTransportError

from .spiffe_id import SpiffeID


@dataclass(slots=True, frozen=True)
class WorkloadCredentials:
    spiffe_id: SpiffeID
    trust_anchors: bytes
    certificate_chain: bytes
    private_key: bytes
    expires_at: float


@dataclass(slots=True, frozen=True)
class PeerIdentity:
    spiffe_ids: tuple[str, ...]
    dns_names: tuple[str, ...]


class SecurityHandler:
    """
    Read side of a running security provider. Always reflects the most
    recently issued workload credentials.

    Credentials are read when a dial or handshake is made. A channel that
    is already open keeps the credentials it was created with, refreshes
    only reach later dials.
    """

    def __init__(
        self,
        control_plane_trust_domain: str,
        credentials: WorkloadCredentials,
    ) -> None:
        self._control_plane_trust_domain = control_plane_trust_domain
        self._credentials = credentials

    @property
    def control_plane_trust_domain(self) -> str:
        return self._control_plane_trust_domain

    @property
    def credentials(self) -> WorkloadCredentials:
        return self._credentials

    @property
    def spiffe_id(self) -> SpiffeID:
        return self._credentials.spiffe_id

    def update(self, credentials: WorkloadCredentials):
        self._credentials = credentials

    def grpc_channel_credentials(self) -> grpc.ChannelCredentials:
        return grpc.ssl_channel_credentials(
            root_certificates=self._credentials.trust_anchors,
            private_key=self._credentials.private_key,
            certificate_chain=self._credentials.certificate_chain,
        )

    def ssl_context(self) -> ssl.SSLContext:
        ssl_ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        ssl_ctx.options |= ssl.OP_NO_TLSv1
        ssl_ctx.options |= ssl.OP_NO_TLSv1_1
        ssl_ctx.check_hostname = False
        ssl_ctx.verify_mode = ssl.VerifyMode.CERT_REQUIRED
        ssl_ctx.load_verify_locations(
            cadata=self._credentials.trust_anchors.decode(),
        )
        ssl_ctx.set_alpn_protocols(["h2"])

        with tempfile.TemporaryDirectory() as credentials_directory:
            cert_path = os.path.join(credentials_directory, "cert.pem")
            key_path = os.path.join(credentials_directory, "key.pem")

            with open(cert_path, "wb") as cert_file:
                cert_file.write(self._credentials.certificate_chain)

            with open(
                os.open(key_path, os.O_WRONLY | os.O_CREAT, 0o600),
                "wb",
            ) as key_file:
                key_file.write(self._credentials.private_key)

            ssl_ctx.load_cert_chain(cert_path, keyfile=key_path)

        return ssl_ctx

    async def peer_identity(
        self,
        host: str,
        port: int,
        timeout: int | float,
    ) -> PeerIdentity:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(
                    host,
                    port,
                    ssl=self.ssl_context(),
                    server_hostname=host,
                ),
                timeout=timeout,
            )

        except (OSError, ssl.SSLError, asyncio.TimeoutError) as err:
            raise NodeTransportError(
                f"Err. - mTLS handshake with {host}:{port} failed - {str(err)}"
            ) from err

        try:
            ssl_object: ssl.SSLObject = writer.get_extra_info("ssl_object")
            peer_certificate = x509.load_der_x509_certificate(
                ssl_object.getpeercert(binary_form=True),
            )

        finally:
            writer.close()

        try:
            alternative_names = peer_certificate.extensions.get_extension_for_oid(
                ExtensionOID.SUBJECT_ALTERNATIVE_NAME,
            ).value

        except x509.ExtensionNotFound:
            return PeerIdentity(spiffe_ids=(), dns_names=())

        return PeerIdentity(
            spiffe_ids=tuple(
                uri
                for uri in alternative_names.get_values_for_type(
                    x509.UniformResourceIdentifier,
                )
                if uri.startswith("spiffe://")
            ),
            dns_names=tuple(
                alternative_names.get_values_for_type(x509.DNSName),
            ),
        )

    async def grpc_dial_options(
        self,
        host: str,
        port: int,
        peer_id: SpiffeID,
        timeout: int | float,
    ) -> tuple[grpc.ChannelCredentials, list[tuple[str, str]]]:
        peer = await self.peer_identity(host, port, timeout)

        if str(peer_id) not in peer.spiffe_ids:
            raise NodeTransportError(
                f"Err. - peer {host}:{port} presented identities {list(peer.spiffe_ids)}, expected {peer_id}"
            )

        channel_options: list[tuple[str, str]] = []
        if peer.dns_names:
            channel_options.append(
                ("grpc.ssl_target_name_override", peer.dns_names[0]),
            )

        return self.grpc_channel_credentials(), channel_options
