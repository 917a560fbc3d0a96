"""
Pytest configuration and shared fixtures.
"""

import pytest
from unittest.mock import patch

from ratewatch.database.connection import Database
from ratewatch.data.rates import RateProvider


SAMPLE_ECB_XML = """<?xml version="1.0" encoding="UTF-8"?>
<gesmes:Envelope xmlns:gesmes="http://www.gesmes.org/xml/2002-08-01" xmlns="http://www.ecb.int/vocabulary/2002-08-01/eurofxref">
    <gesmes:subject>Reference rates</gesmes:subject>
    <gesmes:Sender>
        <gesmes:name>European Central Bank</gesmes:name>
    </gesmes:Sender>
    <Cube>
        <Cube time="2026-10-16">
            <Cube currency="USD" rate="1.12"/>
            <Cube currency="JPY" rate="161.50"/>
            <Cube currency="GBP" rate="0.85"/>
            <Cube currency="ZAR" rate="19.80"/>
        </Cube>
    </Cube>
</gesmes:Envelope>
"""


@pytest.fixture
def sample_ecb_xml():
    """Sample ECB daily reference rate document."""
    return SAMPLE_ECB_XML


@pytest.fixture
def db():
    """In-memory database with schema."""
    database = Database(":memory:")
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def rate_provider(sample_ecb_xml):
    """Rate provider with the sample table loaded."""
    provider = RateProvider(max_retries=1, retry_delay=0)
    with patch("requests.get") as mock_get:
        mock_get.return_value.text = sample_ecb_xml
        mock_get.return_value.status_code = 200
        assert provider.refresh() is True
    return provider


@pytest.fixture
def sample_discord_webhook_url():
    """Sample Discord webhook URL for testing."""
    return "https://discord.com/api/webhooks/123456789/abcdefghijklmnop"


@pytest.fixture
def sample_smtp_config():
    """Sample SMTP configuration for testing."""
    return {
        "host": "smtp.gmail.com",
        "port": 587,
        "user": "test@gmail.com",
        "password": "test-app-password",
        "from_address": "alerts@ratewatch.app",
        "to_addresses": ["recipient@example.com"],
    }
