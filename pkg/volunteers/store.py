"""
Volunteer storage on top of LocalStorage.

Volunteers are stored flat under one key, each carrying its listId; lists are
stored as [{id, title}] under another. The board is rebuilt from the two on
load and flattened back into them on save.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .debug_log import debug_log
from .images import (
    AGGRESSIVE_MAX_DIMENSION,
    CLEANUP_SIZE,
    COMPRESS_ON_SAVE_SIZE,
    ImageCompressionError,
    compress_image_for_storage,
    get_data_url_size_kb,
    resize_to_max_dimension,
)
from .schema import (
    ALL_VOLUNTEERS_LIST_ID,
    BoardList,
    VolunteerCard,
    default_lists,
)
from .storage import (
    LISTS_STORAGE_KEY,
    VOLUNTEERS_STORAGE_KEY,
    LocalStorage,
)

logger = logging.getLogger(__name__)


@dataclass
class CompressionResult:
    """How many images a storage cleanup shrank and how many chars it saved."""
    count: int = 0
    savings: int = 0

    def add(self, before: int, after: int) -> None:
        if before - after > 0:
            self.count += 1
            self.savings += before - after

    def to_dict(self) -> dict:
        return {"compressed": self.count, "savedKB": round(self.savings / 1024)}


@dataclass
class ImageRepairResult:
    """Outcome of re-validating every profile image before a force save."""
    total: int = 0
    with_images: int = 0
    recovered: int = 0
    compressed: int = 0

    def message(self) -> str:
        text = f"Data force-saved successfully. {self.with_images} volunteers have profile images"
        if self.recovered:
            text += f" ({self.recovered} recovered)"
        if self.compressed:
            text += f" ({self.compressed} compressed)"
        return text + "."

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "withImages": self.with_images,
            "recovered": self.recovered,
            "compressed": self.compressed,
            "message": self.message(),
        }


def _compress_oversized(data_url: str, result: ImageRepairResult) -> str:
    if len(data_url) <= COMPRESS_ON_SAVE_SIZE:
        return data_url
    try:
        compressed = compress_image_for_storage(data_url)
    except ImageCompressionError as e:
        logger.error(f"Error compressing image: {e}")
        return data_url
    result.compressed += 1
    return compressed


class VolunteerStore:
    """Reads and writes volunteers and lists in local storage."""

    def __init__(self, storage: LocalStorage):
        self.storage = storage

    # ── Raw records ─────────────────────────────────────────────────────────

    def load_volunteers(self) -> List[VolunteerCard]:
        raw = self.storage.get_json(VOLUNTEERS_STORAGE_KEY, []) or []
        return [VolunteerCard.from_dict(v) for v in raw if isinstance(v, dict)]

    def save_volunteers(self, volunteers: Iterable[VolunteerCard]) -> None:
        self.storage.set_json(VOLUNTEERS_STORAGE_KEY, [v.to_dict() for v in volunteers])

    def has_lists(self) -> bool:
        return self.storage.get_item(LISTS_STORAGE_KEY) is not None

    def load_lists(self) -> List[BoardList]:
        """Stored lists (without cards). Seeds the default lists on first use."""
        raw = self.storage.get_json(LISTS_STORAGE_KEY)
        if raw is None:
            lists = default_lists()
            self.save_lists(lists)
            return lists
        return [BoardList.from_dict(item) for item in raw if isinstance(item, dict)]

    def save_lists(self, lists: Iterable[BoardList]) -> None:
        """Persist list structure only; the aggregate list is never stored."""
        self.storage.set_json(
            LISTS_STORAGE_KEY,
            [lst.to_dict() for lst in lists if lst.id != ALL_VOLUNTEERS_LIST_ID],
        )

    # ── Board ───────────────────────────────────────────────────────────────

    def _normalize_images(self, volunteers: List[VolunteerCard]) -> None:
        for v in volunteers:
            if not v.image:
                att = v.image_attachment()
                if att:
                    v.image = att.url
                    debug_log("Recovered image from attachments during load", {
                        "volunteerId": v.id, "volunteerName": v.title,
                    })
            if v.image and (not isinstance(v.image, str) or not v.image.startswith("data:")):
                debug_log(f"Invalid image data for {v.title}, removing image property", {
                    "volunteerId": v.id,
                })
                v.image = None

    def load_board(self) -> List[BoardList]:
        """Rebuild the lists with their cards from storage."""
        try:
            volunteers = self.load_volunteers()
        except Exception as e:
            logger.error(f"Error parsing volunteers from storage: {e}")
            volunteers = []

        if volunteers:
            self._normalize_images(volunteers)
            self.save_volunteers(volunteers)

        first_run = not self.has_lists()
        lists = self.load_lists()
        if not lists:
            return []

        if first_run and volunteers:
            for v in volunteers:
                if not v.list_id:
                    v.list_id = lists[0].id
            self.save_volunteers(volunteers)

        by_id: Dict[str, BoardList] = {lst.id: lst for lst in lists}
        for v in volunteers:
            target = by_id.get(v.list_id or lists[0].id)
            if target is None:
                target = lists[0]
            v.list_id = target.id
            target.cards.append(v)

        for lst in lists:
            seen = set()
            unique = []
            for card in lst.cards:
                if card.id in seen:
                    debug_log("Removed duplicate card during load", {
                        "cardId": card.id, "listId": lst.id,
                    })
                    continue
                seen.add(card.id)
                unique.append(card)
            lst.cards = unique

        debug_log(
            f"Board loaded with {sum(1 for v in volunteers if v.image)} volunteers having images",
            {"totalLists": len(lists), "totalVolunteers": len(volunteers)},
        )
        return lists

    def flatten(self, lists: Iterable[BoardList]) -> List[VolunteerCard]:
        """Every card once, stamped with the id of the list it sits in."""
        out: List[VolunteerCard] = []
        seen = set()
        for lst in lists:
            if lst.id == ALL_VOLUNTEERS_LIST_ID:
                continue
            for card in lst.cards:
                if card.id in seen:
                    debug_log("Prevented duplicate card from being saved", {
                        "cardId": card.id, "listId": lst.id,
                    })
                    continue
                card.list_id = lst.id
                out.append(card)
                seen.add(card.id)
        return out

    def save_board(self, lists: List[BoardList]) -> None:
        self.save_lists(lists)
        volunteers = self.flatten(lists)
        debug_log("Saving volunteers to storage", {
            "total": len(volunteers),
            "withImages": sum(1 for v in volunteers if v.image),
        })
        self.save_volunteers(volunteers)

    # ── Single volunteer ────────────────────────────────────────────────────

    def get_volunteer(self, volunteer_id: str) -> Optional[VolunteerCard]:
        for v in self.load_volunteers():
            if v.id == volunteer_id:
                return v
        return None

    def update_volunteer(self, card: VolunteerCard) -> bool:
        """
        Replace a stored volunteer. Keeps the existing image when the update
        has none and compresses oversized images. False if the id is unknown.
        """
        volunteers = self.load_volunteers()
        for i, existing in enumerate(volunteers):
            if existing.id == card.id:
                break
        else:
            logger.error(f"Volunteer with ID {card.id} not found in storage")
            return False

        if not card.image and existing.image:
            card.image = existing.image
            debug_log("Preserved existing image during update", {
                "volunteerId": card.id, "volunteerName": card.title,
            })
        if card.list_id is None:
            card.list_id = existing.list_id

        compress_card_images(card, threshold=COMPRESS_ON_SAVE_SIZE)

        volunteers[i] = card
        self.save_volunteers(volunteers)
        debug_log("Updated volunteer in storage", {
            "id": card.id,
            "name": card.title,
            "hasImage": bool(card.image),
            "imageLength": len(card.image) if card.image else 0,
        })
        return True

    # ── Image repair ────────────────────────────────────────────────────────

    def repair_images(self, volunteers: List[VolunteerCard]) -> ImageRepairResult:
        """
        Validate every profile image in place. Images that are not data URLs
        are dropped and replaced from an image attachment when one exists;
        images over 750KB are compressed.
        """
        result = ImageRepairResult(total=len(volunteers))
        for v in volunteers:
            if isinstance(v.image, str) and v.image.startswith("data:"):
                v.image = _compress_oversized(v.image, result)
            else:
                if v.image:
                    debug_log(f"Invalid image data for {v.title}, removing image property", {
                        "volunteerId": v.id,
                    })
                v.image = None
                att = v.image_attachment()
                if att:
                    v.image = _compress_oversized(att.url, result)
                    result.recovered += 1
                    debug_log(f"Recovered image from attachment for {v.title}", {
                        "volunteerId": v.id, "attachmentName": att.name,
                    })
            if v.image:
                result.with_images += 1
        return result

    def image_diagnostics(self) -> dict:
        """Count stored volunteers holding image data and log each one."""
        volunteers = self.load_volunteers()
        with_image = with_image_attachments = with_attachments = 0
        for v in volunteers:
            has_image_attachments = any(a.is_image for a in v.attachments)
            with_image += bool(v.image)
            with_image_attachments += has_image_attachments
            with_attachments += bool(v.attachments)
            if v.image or v.attachments:
                debug_log("Volunteer with image data:", {
                    "id": v.id,
                    "name": v.title,
                    "hasImageProperty": bool(v.image),
                    "imageLength": len(v.image) if v.image else 0,
                    "sizeKB": get_data_url_size_kb(v.image) if v.image else 0,
                    "attachmentsCount": len(v.attachments),
                    "hasImageAttachments": has_image_attachments,
                })
        return {
            "total": len(volunteers),
            "withImageProperty": with_image,
            "withImageAttachments": with_image_attachments,
            "withAttachments": with_attachments,
            "message": (
                f"Debug complete. Found {with_image} volunteers with image property, "
                f"{with_image_attachments} with image attachments, and "
                f"{with_attachments} with any attachments."
            ),
        }

    # ── Storage maintenance ─────────────────────────────────────────────────

    def compress_all_images(self) -> CompressionResult:
        """Compress every image and attachment over 200KB."""
        volunteers = self.load_volunteers()
        result = CompressionResult()
        for v in volunteers:
            if v.image and len(v.image) > CLEANUP_SIZE:
                before = len(v.image)
                try:
                    v.image = compress_image_for_storage(v.image)
                    result.add(before, len(v.image))
                except ImageCompressionError as e:
                    logger.warning(f"Skipping image for {v.id}: {e}")
            for att in v.attachments:
                if att.url and len(att.url) > CLEANUP_SIZE:
                    before = len(att.url)
                    try:
                        att.url = compress_image_for_storage(att.url)
                        result.add(before, len(att.url))
                    except ImageCompressionError as e:
                        logger.warning(f"Skipping attachment {att.name} for {v.id}: {e}")
        self.save_volunteers(volunteers)
        logger.info(
            f"Cleaned up storage: compressed {result.count} images, "
            f"saved {round(result.savings / 1024)}KB"
        )
        return result

    def aggressively_compress_images(self) -> CompressionResult:
        """Shrink every profile image to 300px at quality 0.3."""
        volunteers = self.load_volunteers()
        result = CompressionResult()
        for v in volunteers:
            if not v.image:
                continue
            before = len(v.image)
            try:
                v.image = resize_to_max_dimension(v.image, AGGRESSIVE_MAX_DIMENSION, quality=0.3)
            except ImageCompressionError as e:
                logger.warning(f"Skipping image for {v.id}: {e}")
                continue
            result.add(before, len(v.image))
        self.save_volunteers(volunteers)
        return result

    def remove_images(self, volunteer_ids: Iterable[str]) -> int:
        """
        Drop profile images from the given volunteers, along with any
        attachment holding the same data. Returns how many were removed.
        """
        wanted = set(volunteer_ids)
        volunteers = self.load_volunteers()
        removed = 0
        for v in volunteers:
            if v.id in wanted and v.image:
                # Otherwise the next load recovers the image from the attachment
                v.attachments = [a for a in v.attachments if a.url != v.image]
                v.image = None
                removed += 1
        self.save_volunteers(volunteers)
        return removed


def compress_card_images(card: VolunteerCard, threshold: int = COMPRESS_ON_SAVE_SIZE) -> None:
    """Compress a card's image and image attachments above threshold, in place."""
    if card.image and len(card.image) > threshold:
        original = get_data_url_size_kb(card.image)
        try:
            card.image = compress_image_for_storage(card.image)
            new = get_data_url_size_kb(card.image)
            debug_log(f"Compressed image for {card.title}", {
                "originalSize": f"{original}KB",
                "newSize": f"{new}KB",
                "reductionPercent": f"{round((1 - new / original) * 100)}%" if original else "0%",
            })
        except ImageCompressionError as e:
            # Keep the uncompressed image
            logger.error(f"Error compressing image: {e}")

    for att in card.attachments:
        if att.type.startswith("image/") and att.url and len(att.url) > threshold:
            try:
                att.url = compress_image_for_storage(att.url)
            except ImageCompressionError as e:
                logger.error(f"Error compressing attachment image {att.name}: {e}")
