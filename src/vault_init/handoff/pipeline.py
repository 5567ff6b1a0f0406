from __future__ import annotations

import os
import socket
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional, Protocol

from vault_init.cli.formatter import OutputFormatter
from vault_init.infrastructure.aws import KmsEncryptor, S3BlobStore, full_key_id
from vault_init.utils.errors import ConfigurationError, HandoffError

if TYPE_CHECKING:
    from vault_init.core.context import BootstrapContext

TOKEN_FILE_SUFFIX = "_token"


class Encryptor(Protocol):
    """Encrypts bytes under a named key and returns the ciphertext."""

    def encrypt(self, key_id: str, plaintext: bytes) -> bytes:
        ...


class BlobStore(Protocol):
    """Uploads a named blob into a namespace and returns a location descriptor."""

    def upload(self, namespace: str, object_name: str, body: bytes) -> str:
        ...


def token_object_name(hostname: str) -> str:
    """Name of the encrypted token file/object for a host."""
    return f"{hostname}{TOKEN_FILE_SUFFIX}"


def write_token_file(path: Path, content: bytes) -> Path:
    """Write ciphertext readable only by the current user."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as handle:
        handle.write(content)
    return path


class CredentialHandoff:
    """
    Drives the root token through encryption, a local ciphertext file and a
    durable upload.

    The token counts as handled only when every step succeeds. Any failure is
    raised as HandoffError and nothing is retried.
    """

    def __init__(
        self,
        encryptor: Encryptor,
        blob_store: BlobStore,
        key_id: str,
        bucket: str,
        token_dir: Path,
        hostname: Optional[str] = None,
        log: Optional[Callable[..., None]] = None,
    ) -> None:
        self.encryptor = encryptor
        self.blob_store = blob_store
        self.key_id = key_id
        self.bucket = bucket
        self.token_dir = token_dir
        self.hostname = hostname if hostname is not None else socket.gethostname()
        self.log = log or OutputFormatter.log

        if not self.hostname:
            raise HandoffError("unable to determine host name for the token file")

    @property
    def object_name(self) -> str:
        return token_object_name(self.hostname)

    @property
    def token_path(self) -> Path:
        return self.token_dir / self.object_name

    def handoff(self, root_token: str) -> str:
        """Encrypt, persist and upload the token; return the upload location."""
        self.log("Encrypting root token...")
        try:
            ciphertext = self.encryptor.encrypt(self.key_id, root_token.encode("utf-8"))
        except Exception as exc:
            raise HandoffError(f"encryption under {self.key_id} failed: {exc}") from exc

        if not ciphertext:
            raise HandoffError(f"encryption under {self.key_id} returned no ciphertext")
        self.log("Encryption complete.")

        try:
            write_token_file(self.token_path, ciphertext)
            body = self.token_path.read_bytes()
        except OSError as exc:
            raise HandoffError(f"unable to persist encrypted token at {self.token_path}: {exc}") from exc

        self.log(f"Uploading encrypted token to bucket '{self.bucket}'...")
        try:
            location = self.blob_store.upload(self.bucket, self.object_name, body)
        except Exception as exc:
            raise HandoffError(f"upload of {self.object_name} to '{self.bucket}' failed: {exc}") from exc

        self.log(f"Encrypted token successfully uploaded to {location}", severity="success")
        return location


def build_credential_handoff(
    context: BootstrapContext,
    log: Optional[Callable[..., None]] = None,
) -> CredentialHandoff:
    """Wire the KMS/S3 handoff from context settings; incomplete AWS settings are fatal."""
    missing = context.aws.missing_variables()
    if missing:
        raise ConfigurationError(
            f"Cannot store the root token, missing AWS settings: {', '.join(missing)}"
        )

    region = context.aws.region
    return CredentialHandoff(
        encryptor=KmsEncryptor(region=region),
        blob_store=S3BlobStore(region=region),
        key_id=full_key_id(context.aws.account_number, context.aws.kms_key_id, region),
        bucket=context.handoff.bucket,
        token_dir=context.handoff.dir,
        log=log,
    )
