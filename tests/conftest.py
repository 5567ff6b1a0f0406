import pytest
import sys
from pathlib import Path

# Ensure src/ is in the python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

SETTINGS_ENV_VARS = [
    "VAULT_ADDR",
    "CHECK_INTERVAL",
    "VAULT_HTTP_TIMEOUT",
    "AWS_REGION",
    "AWS_ACCOUNT_NUMBER",
    "AWS_KMS_KEY_ID",
    "TOKEN_BUCKET",
    "TOKEN_DIR",
]


@pytest.fixture(autouse=True)
def clean_settings_env(monkeypatch):
    """
    Settings are read from the environment; start every test from a blank slate.
    """
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class LogRecorder:
    """Stands in for OutputFormatter.log and keeps every narrated line."""

    def __init__(self):
        self.entries = []

    def __call__(self, message: str, severity: str = "info") -> None:
        self.entries.append((severity, message))

    @property
    def messages(self):
        return [message for _, message in self.entries]

    def text(self) -> str:
        return "\n".join(self.messages)


@pytest.fixture
def log_recorder():
    return LogRecorder()


@pytest.fixture
def aws_env(monkeypatch, tmp_path):
    monkeypatch.setenv("AWS_REGION", "eu-west-1")
    monkeypatch.setenv("AWS_ACCOUNT_NUMBER", "123456789012")
    monkeypatch.setenv("AWS_KMS_KEY_ID", "key-abc")
    monkeypatch.setenv("TOKEN_DIR", str(tmp_path / "tokens"))
