import pytest
import logging

from call_assistant.config.settings import AssistantSettings

from fakes import FakeAudioSource, FakeDialer

@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield

@pytest.fixture
def settings():
    """Settings that pass session validation and never wait between retries"""
    return AssistantSettings(
        dialer_api_key="abc123:def456",
        transcription_api_key="sk-test",
        webhook_secret="webhook-secret",
        webhook_url="https://example.com/webhook",
        chunk_interval=3600,
        max_retries=3,
        retry_base_delay=0,
        drain_timeout=5,
    )

@pytest.fixture
def dialer():
    return FakeDialer()

@pytest.fixture
def audio_source():
    return FakeAudioSource()
