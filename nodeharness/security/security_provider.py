import asyncio
import os
import time

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from nodeharness.env import Env
from nodeharness.errors import NodeConfigurationError, SecuritySessionError
from nodeharness.logging import Logger
from nodeharness.logging.harness_logging_models import (
    SecurityDebug,
    SecurityError,
    SecurityInfo,
)

from .security_handler import SecurityHandler, WorkloadCredentials
from .security_options import SecurityOptions
from .spiffe_id import SpiffeID


class SecurityProvider:
    """
    Obtains and keeps refreshing a workload identity for one app id.

    run() issues the first credentials, then re-issues them each time
    the configured share of their lifetime has elapsed, until the stop
    event is set. handler() resolves once the first credentials exist.
    """

    def __init__(
        self,
        options: SecurityOptions,
        env: Env | None = None,
        logger: Logger | None = None,
    ) -> None:
        if env is None:
            env = Env()

        if not options.mtls_enabled:
            raise NodeConfigurationError(
                f"Err. - mTLS must be enabled to issue credentials for {options.app_id}"
            )

        if not os.path.exists(options.trust_anchors_file):
            raise NodeConfigurationError(
                f"Err. - trust anchors file {options.trust_anchors_file} does not exist"
            )

        self._options = options
        self._refresh_ratio = env.NODE_HARNESS_CREDENTIAL_REFRESH_RATIO
        self._spiffe_id = SpiffeID.from_segments(
            options.authority.trust_domain,
            "ns",
            options.namespace,
            options.app_id,
        )

        self._handler: SecurityHandler | None = None
        self._ready = asyncio.Event()
        self._failure: Exception | None = None
        self._issued = 0

        if logger is None:
            logger = Logger()

        self._logger = logger
        self._stream_name = f"security.{options.app_id}"
        self._logger.configure(
            name=self._stream_name,
            template="{timestamp} - {level} - {thread_id} - {filename}:{function_name}.{line_number} - {app_id}@{trust_domain} - {message}",
            models={
                "debug": (
                    SecurityDebug,
                    {
                        "app_id": options.app_id,
                        "trust_domain": options.control_plane_trust_domain,
                    },
                ),
                "info": (
                    SecurityInfo,
                    {
                        "app_id": options.app_id,
                        "trust_domain": options.control_plane_trust_domain,
                    },
                ),
                "error": (
                    SecurityError,
                    {
                        "app_id": options.app_id,
                        "trust_domain": options.control_plane_trust_domain,
                    },
                ),
            },
        )

    @property
    def spiffe_id(self) -> SpiffeID:
        return self._spiffe_id

    @property
    def issued(self) -> int:
        return self._issued

    async def run(self, stop: asyncio.Event):
        try:
            while not stop.is_set():
                credentials = await self._issue()

                if self._handler is None:
                    self._handler = SecurityHandler(
                        self._options.control_plane_trust_domain,
                        credentials,
                    )
                    self._ready.set()

                else:
                    self._handler.update(credentials)

                refresh_in = max(
                    (credentials.expires_at - time.time()) * self._refresh_ratio,
                    0.0,
                )

                async with self._logger.context(name=self._stream_name) as ctx:
                    await ctx.log_prepared(
                        f"Issued credentials for {self._spiffe_id}, refreshing in {refresh_in:.2f}s",
                        name="debug",
                    )

                try:
                    await asyncio.wait_for(stop.wait(), timeout=refresh_in)

                except asyncio.TimeoutError:
                    continue

        except SecuritySessionError as err:
            self._failure = err
            await self._log_failure(err)
            raise

        except Exception as err:
            self._failure = err
            await self._log_failure(err)
            raise SecuritySessionError(
                f"Err. - credential refresh for {self._spiffe_id} failed - {str(err)}"
            ) from err

        finally:
            self._ready.set()

    async def handler(self) -> SecurityHandler:
        await self._ready.wait()

        if self._failure is not None:
            raise SecuritySessionError(
                f"Err. - no credentials available for {self._spiffe_id} - {str(self._failure)}"
            ) from self._failure

        if self._handler is None:
            raise SecuritySessionError(
                f"Err. - security provider for {self._spiffe_id} stopped before issuing credentials"
            )

        return self._handler

    async def _issue(self) -> WorkloadCredentials:
        loop = asyncio.get_running_loop()

        private_key, csr_pem = await loop.run_in_executor(
            None,
            self._create_signing_request,
        )

        certificate_pem = await self._options.authority.sign_certificate(
            csr_pem,
            self._options.app_id,
            self._options.namespace,
        )

        certificate = x509.load_pem_x509_certificate(certificate_pem)
        self._issued += 1

        with open(self._options.trust_anchors_file, "rb") as trust_anchors_file:
            trust_anchors = trust_anchors_file.read()

        return WorkloadCredentials(
            spiffe_id=self._spiffe_id,
            trust_anchors=trust_anchors,
            certificate_chain=certificate_pem,
            private_key=private_key,
            expires_at=certificate.not_valid_after_utc.timestamp(),
        )

    def _create_signing_request(self) -> tuple[bytes, bytes]:
        key = ec.generate_private_key(ec.SECP256R1())

        csr = (
            x509.CertificateSigningRequestBuilder()
            .subject_name(x509.Name([]))
            .add_extension(
                x509.SubjectAlternativeName([
                    x509.UniformResourceIdentifier(str(self._spiffe_id)),
                ]),
                critical=False,
            )
            .sign(key, hashes.SHA256())
        )

        key_pem = key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )

        return key_pem, csr.public_bytes(serialization.Encoding.PEM)

    async def _log_failure(self, err: Exception):
        async with self._logger.context(name=self._stream_name) as ctx:
            await ctx.log_prepared(
                f"Credential refresh for {self._spiffe_id} failed - {str(err)}",
                name="error",
            )
