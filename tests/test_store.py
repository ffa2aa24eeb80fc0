"""
Tests for volunteer persistence: list seeding, board rebuild, dedup and
storage maintenance.
"""
from conftest import png_data_url

from pkg.volunteers.schema import (
    ALL_VOLUNTEERS_LIST_ID,
    Attachment,
    BoardList,
    VolunteerCard,
)
from pkg.volunteers.storage import LISTS_STORAGE_KEY, VOLUNTEERS_STORAGE_KEY
from pkg.volunteers.store import CompressionResult, compress_card_images


def _card(cid, **kwargs):
    return VolunteerCard(id=cid, title=kwargs.pop("title", f"Volunteer {cid}"), **kwargs)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Lists
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_load_lists_seeds_defaults(store, storage):
    assert not store.has_lists()
    lists = store.load_lists()
    assert [lst.id for lst in lists] == ["1", "2", "3", "4"]
    assert store.has_lists()
    assert len(storage.get_json(LISTS_STORAGE_KEY)) == 4


def test_save_lists_skips_aggregate(store, storage):
    store.save_lists([
        BoardList(id=ALL_VOLUNTEERS_LIST_ID, title="All Volunteers"),
        BoardList(id="1", title="New"),
    ])
    assert storage.get_json(LISTS_STORAGE_KEY) == [{"id": "1", "title": "New"}]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Board rebuild
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_first_run_assigns_volunteers_to_first_list(store):
    store.save_volunteers([_card("a"), _card("b")])
    lists = store.load_board()
    assert [c.id for c in lists[0].cards] == ["a", "b"]
    assert all(v.list_id == "1" for v in store.load_volunteers())


def test_cards_distributed_by_list_id(store):
    store.load_lists()
    store.save_volunteers([_card("a", list_id="3"), _card("b", list_id="gone")])
    lists = store.load_board()
    by_id = {lst.id: lst for lst in lists}
    assert [c.id for c in by_id["3"].cards] == ["a"]
    # Unknown list falls back to the first list
    assert [c.id for c in by_id["1"].cards] == ["b"]
    assert by_id["1"].cards[0].list_id == "1"


def test_duplicate_cards_removed_on_load(store):
    store.load_lists()
    store.save_volunteers([_card("a", list_id="2"), _card("a", list_id="2")])
    lists = store.load_board()
    assert len(lists[1].cards) == 1


def test_image_recovered_from_attachment(store):
    url = png_data_url()
    store.save_volunteers([_card("a", attachments=[
        Attachment(id="x", name="p.png", type="image/png", url=url),
    ])])
    lists = store.load_board()
    assert lists[0].cards[0].image == url
    assert store.get_volunteer("a").image == url


def test_invalid_image_dropped(store):
    store.save_volunteers([_card("a", image="https://example.com/p.png")])
    lists = store.load_board()
    assert lists[0].cards[0].image is None


def test_corrupt_volunteers_give_empty_board(store, storage):
    storage.set_item(VOLUNTEERS_STORAGE_KEY, "{broken")
    lists = store.load_board()
    assert len(lists) == 4
    assert all(not lst.cards for lst in lists)


def test_flatten_dedups_and_stamps_list_id(store):
    shared = _card("a")
    lists = [
        BoardList(id=ALL_VOLUNTEERS_LIST_ID, title="All", cards=[_card("z")]),
        BoardList(id="1", title="One", cards=[shared, _card("b")]),
        BoardList(id="2", title="Two", cards=[_card("a")]),
    ]
    flat = store.flatten(lists)
    assert [c.id for c in flat] == ["a", "b"]
    assert flat[0].list_id == "1"


def test_save_board_round_trip(store):
    lists = store.load_board()
    lists[2].cards.append(_card("a"))
    store.save_board(lists)
    rebuilt = store.load_board()
    assert [c.id for c in rebuilt[2].cards] == ["a"]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Single volunteer
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_update_volunteer_preserves_image_and_list(store):
    url = png_data_url()
    store.save_volunteers([_card("a", image=url, list_id="3")])
    assert store.update_volunteer(_card("a", title="Renamed"))
    saved = store.get_volunteer("a")
    assert saved.title == "Renamed"
    assert saved.image == url
    assert saved.list_id == "3"


def test_update_unknown_volunteer(store):
    store.save_volunteers([_card("a")])
    assert not store.update_volunteer(_card("nope"))


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Maintenance
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_compression_result():
    result = CompressionResult()
    result.add(3000, 1000)
    result.add(500, 800)  # grew: not counted
    assert result.count == 1
    assert result.to_dict() == {"compressed": 1, "savedKB": 2}


def test_compress_all_images_shrinks_large_images(store):
    big = png_data_url(width=400, height=400, noise=True)
    store.save_volunteers([_card("a", image=big), _card("b", image=png_data_url())])
    result = store.compress_all_images()
    assert result.count == 1
    assert result.savings > 0
    saved = store.get_volunteer("a")
    assert saved.image.startswith("data:image/jpeg")
    assert len(saved.image) < len(big)


def test_compress_all_images_skips_undecodable(store):
    bogus = "data:image/png;base64," + "A" * (300 * 1024)
    store.save_volunteers([_card("a", image=bogus)])
    result = store.compress_all_images()
    assert result.count == 0
    assert store.get_volunteer("a").image == bogus


def test_aggressive_compression_limits_dimensions(store):
    from conftest import open_data_url
    store.save_volunteers([_card("a", image=png_data_url(width=900, height=600))])
    store.aggressively_compress_images()
    img = open_data_url(store.get_volunteer("a").image)
    assert img.size == (300, 200)


def test_remove_images(store):
    store.save_volunteers([
        _card("a", image=png_data_url()),
        _card("b", image=png_data_url()),
        _card("c"),
    ])
    assert store.remove_images(["a", "c"]) == 1
    assert store.get_volunteer("a").image is None
    assert store.get_volunteer("b").image is not None


def test_removed_image_not_recovered_from_attachment(store):
    url = png_data_url()
    store.save_volunteers([_card("a", image=url, attachments=[
        Attachment(id="x", name="p.png", type="image/png", url=url),
        Attachment(id="y", name="cv.pdf", type="application/pdf", url="data:application/pdf;base64,AAAA"),
    ])])
    store.remove_images(["a"])
    lists = store.load_board()
    card = lists[0].cards[0]
    assert card.image is None
    assert [a.id for a in card.attachments] == ["y"]


def test_compress_card_images_respects_threshold():
    small = png_data_url()
    card = _card("a", image=small)
    compress_card_images(card)
    assert card.image == small


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Image repair and diagnostics
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_repair_images(store):
    small = png_data_url()
    big = png_data_url(width=500, height=400, noise=True)
    assert len(big) > 750 * 1024
    volunteers = [
        _card("a", image=small),
        _card("b", image="https://example.com/p.png", attachments=[
            Attachment(id="x", name="p.png", type="image/png", url=small),
        ]),
        _card("c", image=big),
        _card("d", image="broken"),
    ]
    result = store.repair_images(volunteers)
    assert (result.total, result.with_images, result.recovered, result.compressed) == (4, 3, 1, 1)
    assert volunteers[1].image == small
    assert volunteers[2].image.startswith("data:image/jpeg")
    assert volunteers[3].image is None
    assert result.to_dict()["message"] == (
        "Data force-saved successfully. 3 volunteers have profile images (1 recovered) (1 compressed)."
    )


def test_repair_images_message_without_changes(store):
    result = store.repair_images([_card("a")])
    assert result.message() == "Data force-saved successfully. 0 volunteers have profile images."


def test_image_diagnostics(store, storage):
    from pkg.volunteers import debug_log as debug_log_module
    debug_log_module.attach_storage(storage)
    url = png_data_url()
    store.save_volunteers([
        _card("a", image=url, attachments=[Attachment(id="x", name="p.png", type="image/png", url=url)]),
        _card("b", attachments=[Attachment(id="y", name="cv.pdf", type="application/pdf", url="data:,")]),
        _card("c"),
    ])
    data = store.image_diagnostics()
    assert data["withImageProperty"] == 1
    assert data["withImageAttachments"] == 1
    assert data["withAttachments"] == 2
    assert data["message"] == (
        "Debug complete. Found 1 volunteers with image property, "
        "1 with image attachments, and 2 with any attachments."
    )
    logged = [e for e in debug_log_module.get_debug_logs() if e["message"] == "Volunteer with image data:"]
    assert len(logged) == 2
