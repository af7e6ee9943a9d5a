"""Mock implementations for testing."""

from tests.mediastore.mocks.http import FakeHttpSession, FakeResponse
from tests.mediastore.mocks.s3 import FakeS3Session, client_error
from tests.mediastore.mocks.storage import MockStorage
from tests.mediastore.mocks.web import FakeWeb

__all__ = [
    "FakeHttpSession",
    "FakeResponse",
    "FakeS3Session",
    "FakeWeb",
    "MockStorage",
    "client_error",
]
