"""
Volunteer board schema.

Board layout:
  [All Volunteers] → New Applications → In Progress → Ready to Start → Active Volunteers

Cards are stored flat under one key with a list_id pointing at their list;
lists are stored as {id, title} only. Serialized keys use the camelCase names
the stored JSON has always used.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
import time


ALL_VOLUNTEERS_LIST_ID = "all-volunteers-list"
ALL_VOLUNTEERS_LIST_TITLE = "All Volunteers"

DEFAULT_LISTS = [
    ("1", "New Applications"),
    ("2", "In Progress"),
    ("3", "Ready to Start"),
    ("4", "Active Volunteers"),
]


def utc_now() -> str:
    """ISO-8601 UTC timestamp with milliseconds."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


_last_id = 0


def new_id() -> str:
    """Millisecond timestamp id, bumped so two calls in the same ms never collide."""
    global _last_id
    now = int(time.time() * 1000)
    _last_id = now if now > _last_id else _last_id + 1
    return str(_last_id)


@dataclass
class Attachment:
    """A file attached to a volunteer card, held inline as a data URL."""
    id: str
    name: str
    type: str
    url: str
    uploaded_at: str = field(default_factory=utc_now)

    @property
    def is_image(self) -> bool:
        if self.type and self.type.startswith("image/"):
            return True
        return self.name.lower().endswith((".jpg", ".jpeg", ".png", ".gif", ".webp"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "url": self.url,
            "uploadedAt": self.uploaded_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Attachment":
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name") or "",
            type=data.get("type") or "",
            url=data.get("url") or "",
            uploaded_at=data.get("uploadedAt") or utc_now(),
        )


@dataclass
class ChecklistItem:
    """One step of the master onboarding checklist."""
    id: str
    text: str
    order: int = 0
    show_scheduled_date: bool = True
    show_completed_date: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "order": self.order,
            "showScheduledDate": self.show_scheduled_date,
            "showCompletedDate": self.show_completed_date,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChecklistItem":
        return cls(
            id=str(data.get("id", "")),
            text=data.get("text", ""),
            order=int(data.get("order", 0) or 0),
            show_scheduled_date=bool(data.get("showScheduledDate", True)),
            show_completed_date=bool(data.get("showCompletedDate", True)),
        )


@dataclass
class ChecklistProgress:
    """A volunteer's state for one checklist item."""
    item_id: str
    completed: bool = False
    completed_at: Optional[str] = None
    completed_by: Optional[str] = None
    scheduled_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"itemId": self.item_id, "completed": self.completed}
        # Optional keys are omitted rather than written as null
        if self.completed_at:
            data["completedAt"] = self.completed_at
        if self.completed_by:
            data["completedBy"] = self.completed_by
        if self.scheduled_date:
            data["scheduledDate"] = self.scheduled_date
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChecklistProgress":
        return cls(
            item_id=str(data.get("itemId", "")),
            completed=bool(data.get("completed", False)),
            completed_at=data.get("completedAt"),
            completed_by=data.get("completedBy"),
            scheduled_date=data.get("scheduledDate"),
        )


_CARD_KEYS = {
    "id", "title", "description", "email", "phone", "image", "tags", "createdAt",
    "checklistProgress", "attachments", "listId", "currentRoles", "data",
}


@dataclass
class VolunteerCard:
    """A volunteer record shown as a card on the board."""

    id: str
    title: str
    description: str = ""
    email: str = ""
    phone: str = ""
    image: Optional[str] = None        # data URL
    tags: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now)
    checklist_progress: Optional[List[ChecklistProgress]] = None
    attachments: List[Attachment] = field(default_factory=list)
    list_id: Optional[str] = None
    current_roles: List[str] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)

    # Keys written by other clients that this model does not know about
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    def image_attachment(self) -> Optional[Attachment]:
        """First image attachment held as a data URL, if any."""
        for att in self.attachments:
            if att.is_image and isinstance(att.url, str) and att.url.startswith("data:"):
                return att
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the stored JSON shape."""
        out = dict(self.extra)
        out.update({
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "email": self.email,
            "phone": self.phone,
            "image": self.image,
            "tags": list(self.tags),
            "createdAt": self.created_at,
            "attachments": [a.to_dict() for a in self.attachments],
            "currentRoles": list(self.current_roles),
            "data": self.data,
        })
        if self.checklist_progress is not None:
            out["checklistProgress"] = [p.to_dict() for p in self.checklist_progress]
        if self.list_id is not None:
            out["listId"] = self.list_id
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VolunteerCard":
        """Deserialize, tolerating missing and legacy fields."""
        progress = data.get("checklistProgress")
        attachments = data.get("attachments") or []
        return cls(
            id=str(data.get("id", "")),
            title=data.get("title") or "",
            description=data.get("description") or "",
            email=data.get("email") or "",
            phone=data.get("phone") or "",
            image=data.get("image"),
            tags=list(data.get("tags") or []),
            created_at=data.get("createdAt") or utc_now(),
            checklist_progress=(
                [ChecklistProgress.from_dict(p) for p in progress]
                if isinstance(progress, list) else None
            ),
            attachments=[Attachment.from_dict(a) for a in attachments if isinstance(a, dict)],
            list_id=data.get("listId"),
            current_roles=list(data.get("currentRoles") or []),
            data=data.get("data") or {},
            extra={k: v for k, v in data.items() if k not in _CARD_KEYS},
        )


@dataclass
class BoardList:
    """A board column. Only id and title are persisted."""
    id: str
    title: str
    cards: List[VolunteerCard] = field(default_factory=list)

    def find(self, card_id: str) -> int:
        for i, card in enumerate(self.cards):
            if card.id == card_id:
                return i
        return -1

    def to_dict(self, with_cards: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "title": self.title}
        if with_cards:
            data["cards"] = [c.to_dict() for c in self.cards]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BoardList":
        return cls(id=str(data.get("id", "")), title=data.get("title", ""))


def default_lists() -> List[BoardList]:
    return [BoardList(id=list_id, title=title) for list_id, title in DEFAULT_LISTS]


@dataclass
class VolunteerData:
    """A volunteer as described by a CRM form submission."""
    id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    notes: str = ""
    tags: List[str] = field(default_factory=list)
    volunteer_roles: Any = field(default_factory=list)   # list or a single string
    form_data: Dict[str, Any] = field(default_factory=dict)
    image: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "notes": self.notes,
            "tags": list(self.tags),
            "volunteerRoles": self.volunteer_roles,
        }
        if self.form_data:
            data["formData"] = self.form_data
        if self.image:
            data["image"] = self.image
        return data
