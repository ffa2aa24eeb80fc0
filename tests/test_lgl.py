"""
Tests for the Little Green Light client, volunteer pull and webhook intake.
"""
import pytest
import requests

from pkg.volunteers.lgl import (
    FORM_TAGS,
    LGLAPIError,
    LGLClient,
    LGLConfigError,
    LGLService,
    build_volunteer_card,
    mock_volunteers,
    process_form_submission,
    verify_webhook_secret,
)
from pkg.volunteers.schema import ChecklistProgress


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        return self._payload


class FakeSession:
    """Records requests and answers from a {url-suffix: response} map."""

    def __init__(self, responses=None, error=None):
        self.responses = responses or {}
        self.error = error
        self.calls = []

    def request(self, method, url, headers=None, json=None, timeout=None):
        self.calls.append({"method": method, "url": url, "headers": headers, "json": json, "timeout": timeout})
        if self.error:
            raise self.error
        for suffix, response in self.responses.items():
            if url.endswith(suffix):
                return response
        return FakeResponse(payload={"items": []})


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Client
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_unconfigured_client_raises():
    client = LGLClient("", session=FakeSession())
    assert not client.configured
    with pytest.raises(LGLConfigError):
        client.get("/constituents")


def test_get_sends_bearer_token():
    session = FakeSession({"/constituents": FakeResponse(payload={"items": [1]})})
    client = LGLClient("tok", "https://lgl.example.com/api/v1/", session=session)
    assert client.get("/constituents") == {"items": [1]}
    call = session.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == "https://lgl.example.com/api/v1/constituents"
    assert call["headers"]["Authorization"] == "Bearer tok"
    assert call["timeout"] > 0


def test_post_sends_body():
    session = FakeSession()
    LGLClient("tok", session=session).post("/gifts", {"amount": 5})
    assert session.calls[0]["method"] == "POST"
    assert session.calls[0]["json"] == {"amount": 5}


def test_error_status_raises():
    session = FakeSession({"/constituents": FakeResponse(401, text="bad token")})
    with pytest.raises(LGLAPIError) as exc:
        LGLClient("tok", session=session).get("/constituents")
    assert exc.value.status == 401
    assert str(exc.value) == "LGL API error (401): bad token"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Volunteer pull
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_fetch_falls_through_queries_and_caches():
    session = FakeSession({
        "custom_field_name=Volunteer%20Status": FakeResponse(payload={"items": [
            {"id": 12, "first_name": "Ana", "last_name": "Lopez",
             "email": "ana@example.com", "categories": [{"name": "Volunteer"}]},
        ]}),
    })
    service = LGLService(LGLClient("tok", session=session))
    volunteers = service.fetch_volunteers()
    assert len(session.calls) == 2
    assert volunteers[0].id == "12"
    assert volunteers[0].full_name == "Ana Lopez"
    assert volunteers[0].tags == ["Volunteer"]

    assert service.fetch_volunteers() is volunteers
    assert len(session.calls) == 2


def test_fetch_uses_mock_when_api_fails():
    session = FakeSession(error=requests.ConnectionError("down"))
    service = LGLService(LGLClient("tok", session=session))
    volunteers = service.fetch_volunteers()
    assert len(session.calls) == 3
    assert [v.first_name for v in volunteers] == [v.first_name for v in mock_volunteers()]


def test_fetch_without_token_uses_mock():
    assert len(LGLService(LGLClient("", session=FakeSession())).fetch_volunteers()) == 5


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Webhook intake
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_form_submission_field_aliases():
    v = process_form_submission({
        "record_id": 99,
        "fname": "Kim",
        "lname": "Park",
        "email_address": "kim@example.com",
        "mobile_phone": "555-0102",
        "notes": "Evenings",
        "volunteer_role": "Driver",
    })
    assert v.id == "99"
    assert v.full_name == "Kim Park"
    assert v.email == "kim@example.com"
    assert v.phone == "555-0102"
    assert v.notes == "Evenings"
    assert v.tags == FORM_TAGS + ["Driver"]
    assert v.volunteer_roles == "Driver"


def test_form_submission_interest_list():
    v = process_form_submission({
        "submission_id": "s1",
        "first_name": "Ana",
        "last_name": "Lopez",
        "volunteer_interests": ["Tutoring", "Events"],
    })
    assert v.tags == FORM_TAGS + ["Tutoring", "Events"]
    assert v.form_data["submission_id"] == "s1"


def test_form_submission_generates_id():
    assert process_form_submission({"first_name": "A"}).id.startswith("form-")


def test_form_submission_rejects_non_object():
    with pytest.raises(ValueError):
        process_form_submission(["not", "an", "object"])


def test_build_volunteer_card():
    v = process_form_submission({"id": "7", "first_name": "Ana", "last_name": "Lopez", "comments": "Hi"})
    progress = [ChecklistProgress(item_id="1"), ChecklistProgress(item_id="2")]
    card = build_volunteer_card(v, progress)
    assert card.id == "7"
    assert card.title == "Ana Lopez"
    assert card.description == "Hi"
    assert card.image is None
    assert [p.item_id for p in card.checklist_progress] == ["1", "2"]
    assert not any(p.completed for p in card.checklist_progress)
    assert card.data["firstName"] == "Ana"


def test_verify_webhook_secret():
    assert verify_webhook_secret("", "")
    assert verify_webhook_secret("anything", "")
    assert verify_webhook_secret("s3cret", "s3cret")
    assert not verify_webhook_secret("wrong", "s3cret")
    assert not verify_webhook_secret(None, "s3cret")
