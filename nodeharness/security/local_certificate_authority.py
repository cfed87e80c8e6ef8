import asyncio
import datetime
import ipaddress
import os
import uuid

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from nodeharness.env import Env, TimeParser
from nodeharness.errors import SecuritySessionError
from nodeharness.scope import TestScope

from .spiffe_id import SpiffeID


class LocalCertificateAuthority:
    """
    In-process certificate authority issuing SPIFFE X.509 identities.

    Stands in for the identity service in tests: it owns a self-signed
    root, signs workload CSRs for clients and can mint serving
    certificates for test servers that impersonate a node.
    """

    def __init__(
        self,
        trust_domain: str = "localhost",
        namespace: str = "default",
        port: int = 0,
        env: Env | None = None,
    ) -> None:
        if env is None:
            env = Env()

        self._trust_domain = trust_domain
        self._namespace = namespace
        self._port = port
        self._ttl = TimeParser(env.NODE_HARNESS_CREDENTIAL_TTL).time

        self._root_key = ec.generate_private_key(ec.SECP256R1())

        now = datetime.datetime.now(datetime.timezone.utc)
        subject = x509.Name([
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, trust_domain),
            x509.NameAttribute(NameOID.COMMON_NAME, f"{trust_domain} root"),
        ])

        self._root = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(self._root_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(minutes=1))
            .not_valid_after(now + datetime.timedelta(days=1))
            .add_extension(
                x509.BasicConstraints(ca=True, path_length=0),
                critical=True,
            )
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=False,
                    key_encipherment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=True,
                    crl_sign=True,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(self._root_key.public_key()),
                critical=False,
            )
            .sign(self._root_key, hashes.SHA256())
        )

    @property
    def address(self) -> str:
        return f"localhost:{self._port}"

    @property
    def port(self) -> int:
        return self._port

    @property
    def trust_domain(self) -> str:
        return self._trust_domain

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def trust_anchors(self) -> bytes:
        return self._root.public_bytes(serialization.Encoding.PEM)

    def trust_anchors_file(self, scope: TestScope) -> str:
        path = os.path.join(scope.temp_dir(), "ca.pem")

        with open(path, "wb") as trust_anchors_file:
            trust_anchors_file.write(self.trust_anchors)

        os.chmod(path, 0o600)

        return path

    async def sign_certificate(
        self,
        csr_pem: bytes,
        app_id: str,
        namespace: str,
    ) -> bytes:
        loop = asyncio.get_running_loop()

        return await loop.run_in_executor(
            None,
            self._sign_certificate,
            csr_pem,
            app_id,
            namespace,
        )

    def issue(
        self,
        app_id: str,
        namespace: str | None = None,
        dns_names: list[str] | None = None,
        ip_addresses: list[str] | None = None,
    ) -> tuple[bytes, bytes]:
        if namespace is None:
            namespace = self._namespace

        key = ec.generate_private_key(ec.SECP256R1())
        certificate = self._build_certificate(
            key.public_key(),
            SpiffeID.from_segments(self._trust_domain, "ns", namespace, app_id),
            dns_names=dns_names,
            ip_addresses=ip_addresses,
        )

        key_pem = key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )

        return (
            certificate.public_bytes(serialization.Encoding.PEM),
            key_pem,
        )

    def _sign_certificate(
        self,
        csr_pem: bytes,
        app_id: str,
        namespace: str,
    ) -> bytes:
        csr = x509.load_pem_x509_csr(csr_pem)
        if not csr.is_signature_valid:
            raise SecuritySessionError(
                f"Err. - certificate signing request for {app_id} has an invalid signature"
            )

        certificate = self._build_certificate(
            csr.public_key(),
            SpiffeID.from_segments(self._trust_domain, "ns", namespace, app_id),
        )

        return certificate.public_bytes(serialization.Encoding.PEM)

    def _build_certificate(
        self,
        public_key: ec.EllipticCurvePublicKey,
        spiffe_id: SpiffeID,
        dns_names: list[str] | None = None,
        ip_addresses: list[str] | None = None,
    ) -> x509.Certificate:
        now = datetime.datetime.now(datetime.timezone.utc)

        alternative_names: list[x509.GeneralName] = [
            x509.UniformResourceIdentifier(str(spiffe_id)),
        ]

        alternative_names.extend(
            x509.DNSName(dns_name) for dns_name in dns_names or []
        )

        alternative_names.extend(
            x509.IPAddress(ipaddress.ip_address(ip_address))
            for ip_address in ip_addresses or []
        )

        return (
            x509.CertificateBuilder()
            .subject_name(
                x509.Name([
                    x509.NameAttribute(NameOID.ORGANIZATION_NAME, self._trust_domain),
                    x509.NameAttribute(NameOID.SERIAL_NUMBER, uuid.uuid4().hex),
                ])
            )
            .issuer_name(self._root.subject)
            .public_key(public_key)
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(minutes=1))
            .not_valid_after(now + datetime.timedelta(seconds=self._ttl))
            .add_extension(
                x509.SubjectAlternativeName(alternative_names),
                critical=False,
            )
            .add_extension(
                x509.BasicConstraints(ca=False, path_length=None),
                critical=True,
            )
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=False,
                    key_encipherment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=False,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.ExtendedKeyUsage([
                    ExtendedKeyUsageOID.SERVER_AUTH,
                    ExtendedKeyUsageOID.CLIENT_AUTH,
                ]),
                critical=False,
            )
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(
                    self._root_key.public_key(),
                ),
                critical=False,
            )
            .sign(self._root_key, hashes.SHA256())
        )
