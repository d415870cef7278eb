"""Testing utilities and fakes for the WP image pipeline."""

from .fakes import (
    FakeHttpSession,
    FakeLogger,
    FakeMedia,
    FakePost,
    FakeResponse,
    FakeWordPressSite,
    TestEnvironment,
    create_test_image,
    data_uri_for,
    setup_test_environment,
)

__all__ = [
    "FakeHttpSession",
    "FakeLogger",
    "FakeMedia",
    "FakePost",
    "FakeResponse",
    "FakeWordPressSite",
    "TestEnvironment",
    "create_test_image",
    "data_uri_for",
    "setup_test_environment",
]
