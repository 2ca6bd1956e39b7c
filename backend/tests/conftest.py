"""
pytest configuration and fixtures for the notification backend tests.
"""

import pytest
from datetime import datetime
from itertools import count
from unittest.mock import AsyncMock, MagicMock

# Set environment variables before importing app modules
import os
os.environ["TESTING"] = "true"
os.environ["ENVIRONMENT"] = "test"
os.environ["POSTGRES_HOST"] = "localhost"
os.environ["POSTGRES_PASSWORD"] = "autoserve_test"
os.environ["REDIS_HOST"] = "localhost"
os.environ["REDIS_DB"] = "15"
os.environ["ANALYTICS_CACHE_TTL"] = "0"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key"
os.environ["FRONTEND_URL"] = "https://crm.example.com"
os.environ["BACKEND_URL"] = "https://api.example.com"
os.environ["TWILIO_ACCOUNT_SID"] = "ACtest"
os.environ["TWILIO_AUTH_TOKEN"] = "test-auth-token"
os.environ["TWILIO_PHONE_NUMBER"] = "+15550001111"
os.environ["TWILIO_WHATSAPP_NUMBER"] = ""
os.environ["DEFAULT_COUNTRY_CODE"] = "+91"
os.environ["OPENROUTER_API_KEY"] = ""
os.environ["DEBUG"] = "false"


@pytest.fixture
def mock_session():
    """Create a mock database session."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.refresh = AsyncMock()
    session.rollback = AsyncMock()
    session.get = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def mock_insights() -> dict:
    """Sample insight bundle for testing."""
    return {
        "priority_items": [
            {"item": "Brake Pads", "reason": "Worn below 3mm", "urgency": "high", "estimated_cost": "₹3,500"},
        ],
        "recommended_services": [
            {"item": "Engine Oil", "reason": "Due at 10,000 km", "urgency": "medium", "estimated_cost": "₹2,000"},
        ],
        "optional_checks": [],
        "summary": "Brakes need attention soon.",
    }


def make_customer(**overrides):
    """Customer stand-in with the attributes the notification core reads."""
    from app.models import Customer

    customer = MagicMock(spec=Customer)
    values = {
        "id": 42,
        "customer_name": "Ravi Kumar",
        "phone": "9876543210",
        "alternate_phone": None,
        "email": "ravi@example.com",
        "vehicle_number": "KA01AB1234",
        "vehicle_make": "Nissan",
        "vehicle_model": "Magnite",
        "vehicle_year": 2022,
        "total_mileage": 18000,
    }
    values.update(overrides)
    for key, value in values.items():
        setattr(customer, key, value)
    return customer


def make_insight(customer_id: int = 42, insight_id: int = 7, insights: dict = None):
    from app.models import ServiceInsight

    insight = MagicMock(spec=ServiceInsight)
    insight.id = insight_id
    insight.customer_id = customer_id
    insight.insights_json = insights or {"summary": "All good."}
    insight.generated_at = datetime(2026, 10, 1, 9, 0, 0)
    return insight


def make_result(*, scalar=None, scalars=None, rows=None, one=None, rowcount=None, mappings=None):
    """Create a mock SQLAlchemy result."""
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar
    result.scalar.return_value = scalar
    result.scalars.return_value.all.return_value = scalars or []
    result.scalars.return_value.first.return_value = (scalars or [None])[0]
    result.all.return_value = rows or []
    result.one.return_value = one
    result.mappings.return_value.all.return_value = mappings or []
    result.rowcount = rowcount
    return result


@pytest.fixture
def customer():
    return make_customer()


class MockTwilioClient:
    """Mock Twilio client for testing."""

    def __init__(self, fail_for: tuple = ()):
        self.fail_for = fail_for
        self.sent = []
        self._sids = count(1)

    async def send_message(self, to: str, body: str, from_: str, status_callback: str = None):
        from app.services.twilio_client import TwilioError, TwilioMessage

        if to in self.fail_for or to.replace("whatsapp:", "") in self.fail_for:
            raise TwilioError("The 'To' number is not a valid phone number.", status_code=400, code=21211)

        self.sent.append({"to": to, "body": body, "from": from_, "status_callback": status_callback})
        return TwilioMessage(sid=f"SM{next(self._sids):04d}", status="queued", to=to, from_=from_)

    async def close(self):
        pass


class MockMessageWriter:
    """Mock text-generation writer for testing."""

    def __init__(self, text: str = None, html: str = None, error: Exception = None):
        self.text = text
        self.html = html
        self.error = error
        self.calls = []

    async def summarize_for_email(self, insights, customer_name):
        self.calls.append(("email", customer_name))
        if self.error:
            raise self.error
        return self.html if self.html is not None else f"<p>Dear {customer_name},<br>Your brakes need attention.</p>"

    async def summarize_for_text(self, channel, vehicle, insights, customer_name, tracking_url):
        self.calls.append((channel, tracking_url))
        if self.error:
            raise self.error
        if self.text is not None:
            return self.text
        return f"Hi {customer_name},\n- Brake Pads\n- Engine Oil\n{tracking_url}"


@pytest.fixture
def mock_twilio_client() -> MockTwilioClient:
    """Provide mock Twilio client."""
    return MockTwilioClient()


@pytest.fixture
def mock_writer() -> MockMessageWriter:
    """Provide mock message writer."""
    return MockMessageWriter()


def create_mock_response(status_code: int = 200, json_data: dict = None, text_data: str = None):
    """Create a mock httpx response."""
    response = MagicMock()
    response.status_code = status_code
    response.is_success = status_code >= 200 and status_code < 300
    if json_data:
        response.json.return_value = json_data
    if text_data:
        response.text = text_data
    return response


@pytest.fixture
def customer_factory():
    return make_customer


@pytest.fixture
def insight_factory():
    return make_insight


@pytest.fixture
def result_factory():
    return make_result
