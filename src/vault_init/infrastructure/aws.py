import io
from typing import Any, Optional

import boto3


def full_key_id(account_id: str, key_id: str, region: str) -> str:
    """Return the KMS key ARN for a key id in an account and region."""
    return f"arn:aws:kms:{region}:{account_id}:key/{key_id}"


def s3_object_location(bucket: str, key: str, region: str) -> str:
    """Virtual-hosted style URL of an S3 object."""
    return f"https://{bucket}.s3.{region}.amazonaws.com/{key}"


class KmsEncryptor:
    """Encrypts small payloads (the root token) under a KMS key."""

    def __init__(self, region: str, client: Optional[Any] = None) -> None:
        self.region = region
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = boto3.client("kms", region_name=self.region)
        return self._client

    def encrypt(self, key_id: str, plaintext: bytes) -> bytes:
        response = self.client.encrypt(KeyId=key_id, Plaintext=plaintext)
        return response["CiphertextBlob"]


class S3BlobStore:
    """Uploads blobs to S3 and reports the object URL."""

    def __init__(self, region: str, client: Optional[Any] = None) -> None:
        self.region = region
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = boto3.client("s3", region_name=self.region)
        return self._client

    def upload(self, namespace: str, object_name: str, body: bytes) -> str:
        self.client.upload_fileobj(io.BytesIO(body), namespace, object_name)
        return s3_object_location(namespace, object_name, self.region)
