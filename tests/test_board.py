"""
Tests for board operations: lists, cards, the aggregate list and syncing
with storage.
"""
import pytest

from pkg.volunteers.autosave import AutoSaver
from pkg.volunteers.board import KanbanBoard
from pkg.volunteers.schema import (
    ALL_VOLUNTEERS_LIST_ID,
    Attachment,
    BoardList,
    ChecklistProgress,
    VolunteerCard,
)
from pkg.volunteers.storage import LocalStorage, QuotaExceededError
from pkg.volunteers.store import VolunteerStore


def _card(cid, title=None):
    return VolunteerCard(id=cid, title=title or f"Volunteer {cid}")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Views
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_board_view_leads_with_aggregate(board):
    view = board.board_view()
    assert view[0].id == ALL_VOLUNTEERS_LIST_ID
    assert view[0].title == "All Volunteers"
    assert [lst.id for lst in view[1:]] == ["1", "2", "3", "4"]


def test_aggregate_lists_every_card_once(board):
    board.add_card("1", _card("a"))
    board.add_card("2", _card("b"))
    board.lists[2].cards.append(_card("a"))
    assert [c.id for c in board.all_volunteers().cards] == ["a", "b"]


def test_get_list_and_find_card(board):
    board.add_card("3", _card("a"))
    assert board.get_list("3").title == "Ready to Start"
    assert board.get_list("nope") is None
    lst, card = board.find_card("a")
    assert lst.id == "3"
    assert card.list_id == "3"
    assert board.find_card("missing") is None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Lists
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_add_list(board, store):
    new_list = board.add_list("  Alumni ")
    assert new_list.title == "Alumni"
    assert board.add_list("   ") is None
    board.flush()
    assert store.load_lists()[-1].title == "Alumni"


def test_rename_list(board):
    assert board.rename_list("2", "Interviewing")
    assert board.get_list("2").title == "Interviewing"
    assert not board.rename_list(ALL_VOLUNTEERS_LIST_ID, "Everyone")
    assert not board.rename_list("nope", "X")


def test_move_list(board):
    assert board.move_list(0, 3)
    assert [lst.id for lst in board.lists] == ["2", "3", "4", "1"]
    assert not board.move_list(0, 9)


def test_delete_list_moves_cards_to_first_remaining(board, store):
    board.add_card("1", _card("a"))
    board.add_card("1", _card("b"))
    assert board.delete_list("1")
    assert [lst.id for lst in board.lists] == ["2", "3", "4"]
    assert [c.id for c in board.get_list("2").cards] == ["a", "b"]
    board.flush()
    assert {v.list_id for v in store.load_volunteers()} == {"2"}
    assert not board.delete_list("1")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Cards
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_add_card_rejects_aggregate_and_unknown(board):
    assert board.add_card(ALL_VOLUNTEERS_LIST_ID, _card("a")) is None
    assert board.add_card("nope", _card("a")) is None
    assert board.add_card("1", _card("a")).list_id == "1"


def test_update_card(board):
    board.add_card("1", _card("a"))
    assert board.update_card("1", _card("a", "New Name"))
    assert board.find_card("a")[1].title == "New Name"
    assert not board.update_card("2", _card("a"))


def test_move_card(board, store):
    board.add_card("1", _card("a"))
    assert board.move_card("a", "1", "4")
    assert board.get_list("1").cards == []
    assert board.find_card("a")[0].id == "4"
    board.flush()
    assert store.get_volunteer("a").list_id == "4"


def test_move_card_replaces_same_id_in_target(board):
    board.add_card("1", _card("a", "Fresh"))
    board.get_list("2").cards.append(_card("a", "Stale"))
    assert board.move_card("a", "1", "2")
    cards = board.get_list("2").cards
    assert len(cards) == 1
    assert cards[0].title == "Fresh"


def test_move_card_invalid(board):
    board.add_card("1", _card("a"))
    assert not board.move_card("a", ALL_VOLUNTEERS_LIST_ID, "2")
    assert not board.move_card("a", "1", ALL_VOLUNTEERS_LIST_ID)
    assert not board.move_card("a", "2", "3")
    assert not board.move_card("missing", "1", "2")


def test_delete_card(board):
    board.add_card("1", _card("a"))
    assert board.delete_card("1", "a")
    assert not board.delete_card("1", "a")


def test_upsert_first_list(board):
    card = board.upsert_first_list(_card("a", "First"))
    assert board.find_card("a")[0].id == "1"
    board.move_card("a", "1", "3")
    board.upsert_first_list(_card("a", "Second"))
    lst, card = board.find_card("a")
    assert lst.id == "3"
    assert card.title == "Second"
    assert len(board.all_volunteers().cards) == 1


def test_upsert_merges_into_existing_card(board):
    board.add_card("2", VolunteerCard(
        id="a", title="Ana Lopez", phone="555-0100", tags=["New"],
        image="data:image/png;base64,AAAA",
        attachments=[Attachment(id="x", name="p.png", type="image/png", url="data:image/png;base64,AAAA")],
        current_roles=["Tutor"],
        checklist_progress=[ChecklistProgress(item_id="1", completed=True)],
    ))
    incoming = VolunteerCard(
        id="a", title="Ana Lopez", phone="555-0199", tags=["New", "Weekend"],
        checklist_progress=[ChecklistProgress(item_id="1")],
        data={"source": "form"},
    )
    merged = board.upsert_first_list(incoming)
    lst, card = board.find_card("a")
    assert merged is card
    assert lst.id == "2"
    assert card.phone == "555-0199"
    assert card.tags == ["New", "Weekend"]
    assert card.data == {"source": "form"}
    assert card.image == "data:image/png;base64,AAAA"
    assert [a.id for a in card.attachments] == ["x"]
    assert card.current_roles == ["Tutor"]
    assert card.checklist_progress[0].completed


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Persistence
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_changes_are_debounced(board, store):
    board.add_card("1", _card("a"))
    assert board.autosaver.pending
    assert store.load_volunteers() == []
    board.flush()
    assert [v.id for v in store.load_volunteers()] == ["a"]


def test_sync_flushes_then_reloads(board):
    board.add_card("1", _card("a"))
    with board.sync() as store:
        assert [v.id for v in store.load_volunteers()] == ["a"]
        volunteers = store.load_volunteers()
        volunteers.append(VolunteerCard(id="b", title="Imported", list_id="2"))
        store.save_volunteers(volunteers)
    assert board.find_card("b")[0].id == "2"


def test_sync_keeps_edits_when_save_fails(tmp_path):
    store = VolunteerStore(LocalStorage(str(tmp_path / "small.db"), quota=2000))
    saver = AutoSaver(store, delay=60)
    board = KanbanBoard(store, saver).load()
    board.add_card("1", VolunteerCard(id="a", title="Ana", description="x" * 5000))
    entered = []
    with pytest.raises(QuotaExceededError):
        with board.sync():
            entered.append(True)
    saver.cancel()
    assert entered == []
    assert board.find_card("a")[0].id == "1"


def test_pending_save_holds_lists_at_change_time(board, store):
    added = board.add_list("Alumni")
    board.lists.append(BoardList(id="stray", title="Not saved"))
    board.flush()
    stored = [lst.id for lst in store.load_lists()]
    assert added.id in stored
    assert "stray" not in stored


def test_force_save_reloads_board(board, store):
    board.autosaver.force_save(board.lists, [VolunteerCard(id="z", title="Z", list_id="4")])
    assert board.find_card("z")[0].id == "4"


def test_to_dict_stats(board):
    board.add_card("1", _card("a"))
    board.add_card("2", _card("b"))
    board.find_card("b")[1].image = "data:image/jpeg;base64,AAAA"
    data = board.to_dict()
    assert data["lists"][0]["id"] == ALL_VOLUNTEERS_LIST_ID
    assert len(data["lists"][0]["cards"]) == 2
    assert data["stats"]["totalLists"] == 4
    assert data["stats"]["totalVolunteers"] == 2
    assert data["stats"]["withImages"] == 1
    assert data["stats"]["byList"]["New Applications"] == 1
