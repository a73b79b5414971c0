import pytest

from tourney_core.errors import ValidationError
from tourney_core.payloads import (
    parse_elimination_payload,
    parse_rebuy_payload,
    parse_round_payload,
)


def test_round_identifier_prefers_round_then_round_number_then_name():
    assert parse_round_payload({"round": 3, "roundNumber": 9, "name": "x"}).round == 3
    assert parse_round_payload({"roundNumber": 9, "name": "x"}).round == 9
    assert parse_round_payload({"name": "Final table"}).round == "Final table"


@pytest.mark.parametrize("body", [{}, {"round": ""}, {"round": "   "}, {"round": 0}, {"notes": "hi"}])
def test_round_without_identifier_is_rejected(body):
    with pytest.raises(ValidationError) as excinfo:
        parse_round_payload(body)

    assert excinfo.value.code == "ROUND_REQUIRED"


def test_combined_blinds_win_over_separate_fields():
    announcement = parse_round_payload({"round": 1, "blinds": "100/200", "sb": 1, "bb": 2})

    assert announcement.blinds == "100/200"


def test_separate_blinds_are_formatted():
    assert parse_round_payload({"round": 1, "smallBlind": "50", "big_blind": 100}).blinds == "50/100"
    assert parse_round_payload({"round": 1, "bb": 100}).blinds == "0/100"
    assert parse_round_payload({"round": 1}).blinds is None


def test_duration_minutes_or_rounded_milliseconds():
    assert parse_round_payload({"round": 1, "durationMs": 90_000}).duration_minutes == 2
    assert parse_round_payload({"round": 1, "durationMinutes": 12, "durationMs": 90_000}).duration_minutes == 12
    assert parse_round_payload({"round": 1}).duration_minutes is None


def test_round_number_derived_from_numeric_round():
    announcement = parse_round_payload({"round": "4", "name": "Level 4"})

    assert announcement.round == "4"
    assert announcement.round_number == 4
    assert announcement.level_ordinal == 4


def test_break_round_has_no_level_ordinal():
    announcement = parse_round_payload({"round": "Break", "break": True, "durationMinutes": 10})

    assert announcement.is_break
    assert announcement.round_number is None
    assert announcement.level_ordinal is None


def test_target_tables_are_trimmed_and_deduplicated():
    assert parse_round_payload({"round": 1, "tables": "3, 4,3"}).tables == ["3", "4"]
    assert parse_round_payload({"round": 1, "table": 7}).tables == ["7"]
    assert parse_round_payload({"round": 1}).tables == []


def test_rebuy_requires_table():
    with pytest.raises(ValidationError) as excinfo:
        parse_rebuy_payload({"player": "Ann"})

    assert excinfo.value.code == "TABLE_REQUIRED"
    assert excinfo.value.msg == "Table is required for a rebuy request."


def test_rebuy_amount_accepts_currency_text():
    request = parse_rebuy_payload({"table": " 3 ", "amount": "$1,000"})

    assert request.table == "3"
    assert request.amount == 1000
    assert request.player is None


def test_unreadable_optional_figures_become_none():
    assert parse_rebuy_payload({"table": "3", "amount": True}).amount is None
    assert parse_rebuy_payload({"table": "3", "amount": "cash"}).amount is None
    assert parse_rebuy_payload({"table": "3", "amount": "1.2.3"}).amount is None

    elimination = parse_elimination_payload({"player": "Bob", "position": "first", "payout": float("nan")})
    assert elimination.position is None
    assert elimination.payout is None


def test_elimination_requires_player():
    with pytest.raises(ValidationError) as excinfo:
        parse_elimination_payload({"table": "3", "player": "  "})

    assert excinfo.value.code == "PLAYER_REQUIRED"


def test_non_object_body_is_rejected():
    with pytest.raises(ValidationError) as excinfo:
        parse_elimination_payload(["Ann"])

    assert excinfo.value.code == "BAD_SCHEMA"
