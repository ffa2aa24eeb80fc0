"""
Little Green Light (LGL) integration.

Two directions:
  - outbound: an authenticated client for the LGL REST API, used by the
    /api/lgl proxy and to pull volunteer constituents;
  - inbound: turning a webhook form submission into a volunteer card.
"""
import hmac
import logging
import time
from typing import Any, Dict, List, Optional

import requests

from .schema import ChecklistProgress, VolunteerCard, VolunteerData, utc_now

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.littlegreenlight.com/api/v1"
DEFAULT_ENDPOINT = "/constituents"
REQUEST_TIMEOUT = 15
CACHE_TTL = 5 * 60

FORM_TAGS = ["New Volunteer Applicant", "From LGL Form"]

# Constituent queries tried in order until one returns volunteers
VOLUNTEER_QUERIES = [
    ("Volunteer category", "/constituents?category_name=Volunteer"),
    ("volunteer custom field", "/constituents?custom_field_name=Volunteer%20Status"),
    ("recent constituents", "/constituents?sort=date_added&order=desc&limit=25"),
]


class LGLConfigError(Exception):
    """Raised when the LGL API token is not configured."""
    pass


class LGLAPIError(Exception):
    """Raised when LGL answers with a non-2xx status."""

    def __init__(self, status: int, body: str):
        super().__init__(f"LGL API error ({status}): {body}")
        self.status = status
        self.body = body


class LGLClient:
    """Minimal LGL REST client with bearer-token auth."""

    def __init__(self, api_token: str, api_url: str = DEFAULT_API_URL, session: Optional[requests.Session] = None):
        self.api_token = api_token
        self.api_url = (api_url or DEFAULT_API_URL).rstrip("/")
        self.session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.api_token)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _request(self, method: str, endpoint: str, body: Any = None) -> Any:
        if not self.api_token:
            raise LGLConfigError("LGL API token is not configured")
        url = f"{self.api_url}{endpoint or DEFAULT_ENDPOINT}"
        logger.info(f"Making API request to: {url}")
        r = self.session.request(
            method, url, headers=self._headers(), json=body, timeout=REQUEST_TIMEOUT,
        )
        if not r.ok:
            raise LGLAPIError(r.status_code, r.text)
        return r.json()

    def get(self, endpoint: str = DEFAULT_ENDPOINT) -> Any:
        return self._request("GET", endpoint)

    def post(self, endpoint: str = DEFAULT_ENDPOINT, body: Any = None) -> Any:
        return self._request("POST", endpoint, body)


def _constituent_to_volunteer(item: Dict[str, Any]) -> VolunteerData:
    vid = item.get("id")
    return VolunteerData(
        id=str(vid) if vid is not None else f"const-{int(time.time() * 1000)}",
        first_name=item.get("first_name") or "",
        last_name=item.get("last_name") or "",
        email=item.get("email") or "",
        phone=item.get("phone") or "",
        notes=item.get("notes") or "",
        tags=[c.get("name") for c in item.get("categories") or [] if c.get("name")],
        form_data={"lglData": item},
    )


class LGLService:
    """Pulls volunteers from LGL, with a short cache and a mock fallback."""

    def __init__(self, client: LGLClient, cache_ttl: float = CACHE_TTL):
        self.client = client
        self.cache_ttl = cache_ttl
        self._cached: Optional[List[VolunteerData]] = None
        self._fetched_at = 0.0

    def fetch_volunteers(self) -> List[VolunteerData]:
        now = time.monotonic()
        if self._cached and now - self._fetched_at < self.cache_ttl:
            logger.info("Using cached volunteer data")
            return self._cached

        volunteers: List[VolunteerData] = []
        for label, endpoint in VOLUNTEER_QUERIES:
            try:
                response = self.client.get(endpoint)
            except (LGLConfigError, LGLAPIError, requests.RequestException, ValueError) as e:
                logger.error(f"Error fetching volunteers by {label}: {e}")
                continue
            items = (response or {}).get("items") or []
            if items:
                logger.info(f"Found {len(items)} volunteers by {label}")
                volunteers = [_constituent_to_volunteer(i) for i in items]
                break

        if volunteers:
            self._cached = volunteers
            self._fetched_at = now
            return volunteers

        logger.info("No volunteers found through API, using mock data")
        return mock_volunteers()


def _first(payload: Dict[str, Any], *keys: str, default: Any = "") -> Any:
    for key in keys:
        value = payload.get(key)
        if value:
            return value
    return default


def process_form_submission(payload: Dict[str, Any]) -> VolunteerData:
    """Map an LGL form webhook payload onto VolunteerData."""
    if not isinstance(payload, dict):
        raise ValueError("Form submission must be a JSON object")

    interests = _first(payload, "volunteer_interests", "volunteer_role", default=[])
    volunteer = VolunteerData(
        id=str(_first(payload, "submission_id", "id", "record_id",
                      default=f"form-{int(time.time() * 1000)}")),
        first_name=_first(payload, "first_name", "fname"),
        last_name=_first(payload, "last_name", "lname"),
        email=_first(payload, "email", "email_address"),
        phone=_first(payload, "phone", "phone_number", "mobile_phone"),
        notes=_first(payload, "comments", "notes"),
        tags=list(FORM_TAGS),
        volunteer_roles=interests,
        form_data=payload,
    )

    if isinstance(interests, str):
        volunteer.tags.append(interests)
    elif isinstance(interests, list):
        volunteer.tags.extend(str(i) for i in interests)

    logger.info(f"Processed volunteer: {volunteer.full_name} (ID: {volunteer.id})")
    return volunteer


def build_volunteer_card(data: VolunteerData, progress: List[ChecklistProgress]) -> VolunteerCard:
    """New board card for a submitted volunteer, starting from the given checklist progress."""
    return VolunteerCard(
        id=data.id,
        title=data.full_name,
        description=data.notes or "",
        email=data.email,
        phone=data.phone,
        image=None,
        tags=list(data.tags),
        created_at=utc_now(),
        checklist_progress=list(progress),
        data=data.to_dict(),
    )


def verify_webhook_secret(provided: str, secret: str) -> bool:
    """Constant-time comparison; with no secret configured every call passes."""
    if not secret:
        return True
    return hmac.compare_digest((provided or "").strip(), secret)


def mock_volunteers() -> List[VolunteerData]:
    """Sample volunteers for when the API is not configured."""
    samples = [
        ("1", "Jane", "Smith", "jane.smith@example.com", "(555) 123-4567",
         "Interested in weekend volunteering opportunities", ["New", "Weekend Availability"],
         "2023-05-15T10:30:00Z"),
        ("2", "Michael", "Johnson", "michael.j@example.com", "(555) 987-6543",
         "Has previous experience with youth mentoring", ["Experienced", "Youth Programs"],
         "2023-05-14T14:45:00Z"),
        ("3", "Sarah", "Williams", "sarah.w@example.com", "(555) 456-7890",
         "Available on weekday evenings", ["Weekday Availability"],
         "2023-05-16T09:15:00Z"),
        ("4", "David", "Chen", "david.c@example.com", "(555) 222-3333",
         "Fluent in Mandarin and Spanish", ["Multilingual", "Translation"],
         "2023-05-17T11:20:00Z"),
        ("5", "Emily", "Rodriguez", "emily.r@example.com", "(555) 444-5555",
         "Has background in education and childcare", ["Education", "Youth Programs"],
         "2023-05-18T09:45:00Z"),
    ]
    return [
        VolunteerData(
            id=vid, first_name=first, last_name=last, email=email, phone=phone,
            notes=notes, tags=tags, form_data={"formSubmittedAt": submitted},
        )
        for vid, first, last, email, phone, notes, tags, submitted in samples
    ]
