"""Root token encryption and storage."""

from vault_init.handoff.pipeline import (
	BlobStore,
	CredentialHandoff,
	Encryptor,
	build_credential_handoff,
	token_object_name,
	write_token_file,
)

__all__ = [
	"BlobStore",
	"CredentialHandoff",
	"Encryptor",
	"build_credential_handoff",
	"token_object_name",
	"write_token_file",
]
