import json
import logging

from tourney_core.errors import PersistenceError
from tourney_core.payloads import (
    EliminationRequest,
    RebuyRequest,
    parse_dealer_payload,
    parse_round_payload,
)
from tourney_core.store import JsonFileBackend, MemoryBackend, TournamentStateStore

from .helpers import add_dealer, make_store


class FailingBackend(MemoryBackend):
    def save(self, document):
        raise PersistenceError("disk full")


def test_assign_dealer_upserts_and_keeps_created_at():
    store = make_store()
    first = add_dealer(store, "D1", " 3 ", display_name="Dana")

    second = add_dealer(store, "D1", "4")

    assert first.table == "3"
    assert second.table == "4"
    assert second.created_at == first.created_at
    assert second.display_name == "Dana"
    assert [dealer.id for dealer in store.dealers()] == ["D1"]


def test_blank_table_is_stored_as_none():
    store = make_store()
    dealer = add_dealer(store, "D1", "   ")

    assert dealer.table is None
    assert store.find_dealer_by_table("") is None


def test_store_does_not_reject_duplicate_tables():
    store = make_store()
    add_dealer(store, "D1", "3")
    add_dealer(store, "D2", "3")

    assert len(store.dealers()) == 2
    assert store.find_dealer_by_table("3").id == "D1"


def test_find_dealer_by_table_trims_and_ignores_case():
    store = make_store()
    add_dealer(store, "D1", "Final")

    assert store.find_dealer_by_table("  final ").id == "D1"
    assert store.find_dealer_by_table("semi") is None


def test_unassign_returns_removed_record():
    store = make_store()
    add_dealer(store, "D1", "3")

    removed = store.unassign_dealer("D1")

    assert removed is not None and removed.table == "3"
    assert store.unassign_dealer("D1") is None
    assert store.get_dealer("D1") is None


def test_dealer_payload_falls_back_to_id_for_endpoint():
    assignment = parse_dealer_payload({"id": 42, "table": 3, "firstName": "Sam", "lastName": "Lee"})

    assert assignment.id == "42"
    assert assignment.endpoint_ref == "42"
    assert assignment.table == "3"
    assert assignment.display_name == "Sam Lee"


def test_record_round_change_assigns_fresh_ids():
    store = make_store()

    first = store.record_round_change(parse_round_payload({"round": 1}))
    second = store.record_round_change(parse_round_payload({"round": 1}))

    assert first.id and second.id and first.id != second.id
    assert store.current_round is second


def test_rebuys_and_eliminations_append_in_order():
    store = make_store()
    store.record_rebuy(RebuyRequest(table="3", player="Ann", amount=1000))
    store.record_rebuy(RebuyRequest(table="4"))
    store.record_elimination(EliminationRequest(player="Bob", position=9))

    state = store.get_state()

    assert [entry["table"] for entry in state["rebuys"]] == ["3", "4"]
    assert state["rebuys"][1]["player"] is None
    assert state["eliminations"][0]["position"] == 9


def test_recent_activity_is_newest_first():
    store = make_store()
    for name in ("Ann", "Bob", "Cid"):
        store.record_rebuy(RebuyRequest(table="1", player=name))

    activity = store.recent_activity(limit=2)

    assert [entry["player"] for entry in activity["rebuys"]] == ["Cid", "Bob"]
    assert activity["eliminations"] == []


def test_every_mutation_saves():
    backend = MemoryBackend()
    store = TournamentStateStore(backend)

    add_dealer(store, "D1", "1")
    store.record_round_change(parse_round_payload({"round": 1}))
    store.record_rebuy(RebuyRequest(table="1"))
    store.record_elimination(EliminationRequest(player="Ann"))
    store.unassign_dealer("D1")

    assert backend.saves == 5


def test_json_backend_round_trips_state(tmp_path):
    path = tmp_path / "nested" / "state.json"
    store = TournamentStateStore(JsonFileBackend(path))
    add_dealer(store, "D1", "7", endpoint_ref="chat-1", display_name="Dana")
    store.record_round_change(parse_round_payload({"round": 2, "blinds": "50/100"}))
    store.record_rebuy(RebuyRequest(table="7", player="Ann", amount=1000))

    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert on_disk["dealers"]["D1"]["endpointRef"] == "chat-1"

    reloaded = TournamentStateStore(JsonFileBackend(path))
    assert reloaded.get_dealer("D1").display_name == "Dana"
    assert reloaded.current_round.blinds == "50/100"
    assert reloaded.state.rebuys[0].amount == 1000


def test_missing_file_starts_empty(tmp_path):
    store = TournamentStateStore(JsonFileBackend(tmp_path / "absent.json"))

    assert store.get_state() == {"dealers": [], "currentRound": None, "rebuys": [], "eliminations": []}


def test_corrupt_file_starts_empty(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")

    store = TournamentStateStore(JsonFileBackend(path))

    assert store.dealers() == []


def test_legacy_dealer_list_with_chat_id_loads():
    store = make_store({"dealers": [{"id": "9", "chatId": "c-9", "table": "2"}]})

    dealer = store.get_dealer("9")
    assert dealer.endpoint_ref == "c-9"
    assert dealer.table == "2"


def test_save_failure_keeps_memory_and_is_reported(caplog):
    caplog.set_level(logging.ERROR, logger="tourney_clock.store")
    store = TournamentStateStore(FailingBackend())

    dealer = add_dealer(store, "D1", "1")

    assert store.get_dealer("D1") == dealer
    assert store.last_persist_error == "disk full"
    records = [r for r in caplog.records if "Failed to persist state" in r.getMessage()]
    assert records and all(r.exc_info for r in records)
