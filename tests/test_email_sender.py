import pytest
import requests

from notifications.channels import (
    EmailConfigurationError,
    EmailDeliveryError,
    ResendEmailSender,
    is_valid_from,
)
from notifications.models import DigestPayload


class FakeResponse:
    def __init__(self, status_code, text=""):
        self.status_code = status_code
        self.text = text


class FakeHttp:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def make_sender(responses, **kwargs):
    delays = []
    http = FakeHttp(responses)
    sender = ResendEmailSender(
        "re_test_key",
        "JobMatch <digest@jobmatch.dev>",
        endpoint="https://email.test/emails",
        http=http,
        sleep=delays.append,
        **kwargs,
    )
    return sender, http, delays


def test_successful_send_posts_payload():
    sender, http, delays = make_sender([FakeResponse(200, '{"id": "1"}')])

    sender.send("sam@example.com", "Daily job digest: 1 new job", "<p>hi</p>", "hi")

    assert len(http.calls) == 1
    call = http.calls[0]
    assert call["url"] == "https://email.test/emails"
    assert call["headers"]["Authorization"] == "Bearer re_test_key"
    assert call["json"] == {
        "from": "JobMatch <digest@jobmatch.dev>",
        "to": "sam@example.com",
        "subject": "Daily job digest: 1 new job",
        "html": "<p>hi</p>",
        "text": "hi",
    }
    assert delays == []


def test_server_errors_retry_with_exponential_backoff():
    sender, http, delays = make_sender([FakeResponse(500, "upstream down")])

    with pytest.raises(EmailDeliveryError) as excinfo:
        sender.send("sam@example.com", "s", "h", "t")

    assert len(http.calls) == 1 + sender.max_retries
    assert delays == pytest.approx([0.4, 0.8, 1.6])
    assert all(later > earlier for earlier, later in zip(delays, delays[1:]))
    assert excinfo.value.status_code == 500
    assert "500" in str(excinfo.value)
    assert "upstream down" in str(excinfo.value)


def test_client_error_is_not_retried():
    sender, http, delays = make_sender([FakeResponse(400, "bad request")])

    with pytest.raises(EmailDeliveryError) as excinfo:
        sender.send("sam@example.com", "s", "h", "t")

    assert len(http.calls) == 1
    assert delays == []
    assert excinfo.value.status_code == 400


def test_rate_limit_then_success():
    sender, http, delays = make_sender([FakeResponse(429, "slow down"), FakeResponse(202)])

    sender.send_digest(DigestPayload("u1", "sam@example.com", "s", "h", "t", ["e1"]))

    assert len(http.calls) == 2
    assert delays == [pytest.approx(0.4)]


def test_custom_retry_budget():
    sender, http, delays = make_sender([FakeResponse(503)], max_retries=1, backoff_base=1.0)

    with pytest.raises(EmailDeliveryError):
        sender.send("sam@example.com", "s", "h", "t")

    assert len(http.calls) == 2
    assert delays == [1.0]


def test_transport_error_is_wrapped():
    sender, http, _ = make_sender([requests.ConnectionError("refused")])

    with pytest.raises(EmailDeliveryError) as excinfo:
        sender.send("sam@example.com", "s", "h", "t")

    assert excinfo.value.status_code is None
    assert len(http.calls) == 1


@pytest.mark.parametrize(
    "api_key,from_address,message",
    [
        (None, "digest@jobmatch.dev", "Email provider not configured"),
        ("key", None, "Email provider not configured"),
        ("key", "JobMatch <not-an-address>", "Invalid from address format"),
    ],
)
def test_configuration_errors_fail_before_any_request(api_key, from_address, message):
    http = FakeHttp([FakeResponse(200)])
    sender = ResendEmailSender(api_key, from_address, http=http, sleep=lambda _: None)

    with pytest.raises(EmailConfigurationError, match=message):
        sender.send("sam@example.com", "s", "h", "t")

    assert http.calls == []


@pytest.mark.parametrize(
    "value,expected",
    [
        ("digest@jobmatch.dev", True),
        ("JobMatch <digest@jobmatch.dev>", True),
        ("  digest@jobmatch.dev  ", True),
        ("", False),
        ("digest@localhost", False),
        ("JobMatch <>", False),
        ("two words@jobmatch.dev", False),
    ],
)
def test_is_valid_from(value, expected):
    assert is_valid_from(value) is expected


def test_default_transport_is_requests_module():
    sender = ResendEmailSender("key", "digest@jobmatch.dev")

    assert sender.http is requests
