import asyncio

import httpx

from tourney_core.models import TournamentConfig
from tournament.api import create_app

from .helpers import RecordingTransport, add_dealer, make_session


def run_with_client(session, scenario):
    app = create_app(session)

    async def runner():
        transport = httpx.ASGITransport(app=app)
        try:
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
                return await scenario(client)
        finally:
            await session.close()

    return asyncio.run(runner())


def request(session, method, url, **kwargs):
    async def scenario(client):
        return await client.request(method, url, **kwargs)

    return run_with_client(session, scenario)


def test_health_counts_dealers():
    session, _ = make_session()
    add_dealer(session.store, "D1", "1")

    response = request(session, "GET", "/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "dealers": 1}


def test_state_includes_server_time():
    session, _ = make_session()
    add_dealer(session.store, "D1", "1")

    body = request(session, "GET", "/api/state").json()

    assert [dealer["id"] for dealer in body["dealers"]] == ["D1"]
    assert body["currentRound"] is None
    assert body["serverTime"]


def test_register_dealer_returns_201():
    session, _ = make_session()

    response = request(session, "POST", "/api/dealers", json={"id": "D1", "table": "3", "chatId": "chat-1"})

    assert response.status_code == 201
    assert response.json()["dealer"]["endpointRef"] == "chat-1"
    assert request(session, "GET", "/api/dealers").json()["dealers"][0]["table"] == "3"


def test_register_dealer_without_table_is_400():
    session, _ = make_session()

    response = request(session, "POST", "/api/dealers", json={"id": "D1"})

    assert response.status_code == 400
    assert response.json() == {
        "error": "Both id and table are required to assign a dealer.",
        "code": "DEALER_FIELDS_REQUIRED",
    }


def test_register_dealer_on_taken_table_is_409():
    session, _ = make_session()
    add_dealer(session.store, "D1", "3")

    response = request(session, "POST", "/api/dealers", json={"id": "D2", "table": " 3"})

    assert response.status_code == 409
    assert response.json()["code"] == "TABLE_TAKEN"
    assert session.store.get_dealer("D2") is None


def test_delete_dealer():
    session, _ = make_session()
    add_dealer(session.store, "D1", "3")

    removed = request(session, "DELETE", "/api/dealers/D1")
    missing = request(session, "DELETE", "/api/dealers/D1")

    assert removed.status_code == 200
    assert removed.json()["dealer"]["id"] == "D1"
    assert missing.status_code == 404
    assert missing.json() == {"error": "Dealer not found.", "code": "DEALER_NOT_FOUND"}


def test_post_round_reports_delivery_per_dealer():
    session, _ = make_session(transport=RecordingTransport(fail_for={"D2"}))
    add_dealer(session.store, "D1", "1")
    add_dealer(session.store, "D2", "2")

    response = request(session, "POST", "/api/rounds", json={"round": 3, "sb": 100, "bb": 200})

    body = response.json()
    assert response.status_code == 200
    assert body["round"]["blinds"] == "100/200"
    assert body["notified"] == ["D1"]
    assert body["failures"] == [{"recipient": "D2", "error": "Dealer D2 is not connected"}]
    assert body["dealers"] == ["D1", "D2"]
    assert body["tables"] == []
    assert session.store.current_round.round == 3


def test_round_alias_path_and_missing_identifier():
    session, _ = make_session()

    ok = request(session, "POST", "/round", json={"roundNumber": 2, "name": "Level 2", "durationMs": 900_000})
    bad = request(session, "POST", "/api/rounds", json={"blinds": "1/2"})

    assert ok.status_code == 200
    assert ok.json()["round"]["durationMinutes"] == 15
    assert bad.status_code == 400
    assert bad.json()["error"] == "A round identifier (round, roundNumber, or name) is required."


def test_rebuy_routes_to_table_dealer_or_404():
    session, transport = make_session()
    add_dealer(session.store, "D1", "Table A")

    ok = request(session, "POST", "/api/rebuys", json={"table": "table a", "player": "Ann"})
    missing = request(session, "POST", "/api/rebuys", json={"table": "9"})
    bad = request(session, "POST", "/api/rebuys", json={"player": "Ann"})

    assert ok.status_code == 200
    assert ok.json()["rebuy"]["table"] == "Table A"
    assert ok.json()["notified"] == ["D1"]
    assert missing.status_code == 404
    assert missing.json()["error"] == "No dealer is registered for table 9."
    assert bad.status_code == 400
    assert len(session.store.state.rebuys) == 1


def test_elimination_requires_player():
    session, _ = make_session()

    ok = request(session, "POST", "/api/eliminations", json={"player": "Bob", "payout": "$250"})
    bad = request(session, "POST", "/api/eliminations", json={"table": "1"})

    assert ok.json()["elimination"]["payout"] == 250
    assert ok.json()["notified"] == []
    assert bad.status_code == 400
    assert bad.json()["code"] == "PLAYER_REQUIRED"


def test_invalid_json_is_400():
    session, _ = make_session()

    response = request(
        session, "POST", "/api/rounds", content=b"{round: 1", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400
    assert response.json()["code"] == "BAD_JSON"


def test_clock_controls_drive_the_session():
    session, transport = make_session()
    add_dealer(session.store, "D1", "1")

    async def scenario(client):
        started = await client.post("/api/clock/start")
        advanced = await client.post("/api/clock/advance")
        refused = await client.post("/api/clock/restart", json={})
        restarted = await client.post("/api/clock/restart", json={"confirm": True})
        paused = await client.post("/api/clock/pause")
        clock = await client.get("/api/clock")
        return started, advanced, refused, restarted, paused, clock

    started, advanced, refused, restarted, paused, clock = run_with_client(session, scenario)

    assert started.json()["clock"]["status"] == "running"
    assert advanced.json()["announcement"]["round"]["name"] == "Level 2"
    assert refused.status_code == 400
    assert refused.json()["code"] == "CONFIRM_REQUIRED"
    assert restarted.json()["clock"]["currentLevelIndex"] == 0
    assert restarted.json()["announcement"]["round"]["name"] == "Level 1"
    assert paused.json()["clock"]["status"] == "paused"
    assert clock.json()["level"]["label"] == "Level 1"
    assert len(transport.sent) == 2


def test_retreat_and_reset_routes():
    session, _ = make_session()

    async def scenario(client):
        await client.post("/api/clock/advance")
        retreated = await client.post("/api/clock/retreat")
        reset = await client.post("/api/clock/reset")
        return retreated, reset

    retreated, reset = run_with_client(session, scenario)

    assert retreated.json()["clock"]["currentLevelIndex"] == 0
    assert retreated.json()["announcement"] is None
    assert reset.json()["clock"]["remainingMs"] == 10 * 60_000


def test_structure_round_trip_and_validation():
    session, _ = make_session()

    async def scenario(client):
        updated = await client.put("/api/structure", json={"levels": [{"sb": 5, "bb": 10, "time": 12}, {"break": True, "time": 3}]})
        fetched = await client.get("/api/structure")
        bad = await client.put("/api/structure", json={"levels": "fast"})
        missing_time = await client.put("/api/structure", json=[{"sb": 5, "bb": 10}, {"break": True}])
        return updated, fetched, bad, missing_time

    session.config.round_time = "20:00"
    updated, fetched, bad, missing_time = run_with_client(session, scenario)

    assert updated.json()["clock"]["levelCount"] == 2
    assert fetched.json()["levels"] == [{"round": 1, "ante": 0, "sb": 5, "bb": 10, "time": 12}, {"break": True, "time": 3}]
    assert bad.status_code == 400
    assert missing_time.status_code == 200
    assert [level["time"] for level in missing_time.json()["levels"]] == [20, 10]


def test_config_update_and_summary():
    session, _ = make_session()

    async def scenario(client):
        updated = await client.put("/api/config", json={"title": "Friday", "players": "Ann\nBob", "buyInValue": 100})
        fetched = await client.get("/api/config")
        summary = await client.get("/api/summary", params={"addons": 2})
        return updated, fetched, summary

    updated, fetched, summary = run_with_client(session, scenario)

    assert updated.json()["config"]["title"] == "Friday"
    assert fetched.json()["config"]["players"] == ["Ann", "Bob"]
    assert summary.json()["prizePool"] == 2 * 100 + 2 * 500
    assert isinstance(session.config, TournamentConfig)


def test_activity_and_acknowledgements():
    session, _ = make_session()
    add_dealer(session.store, "D1", "1")

    async def scenario(client):
        await client.post("/api/rebuys", json={"table": "1", "player": "Ann"})
        await client.post("/api/eliminations", json={"player": "Bob"})
        announced = await client.post("/api/rounds", json={"round": 1})
        round_id = announced.json()["round"]["id"]
        session.announcer.acknowledge(round_id, "D1")
        acks = await client.get(f"/api/acks/{round_id}")
        stale = await client.get("/api/acks/nope")
        activity = await client.get("/api/activity", params={"limit": 5})
        return acks, stale, activity

    acks, stale, activity = run_with_client(session, scenario)

    assert acks.json()["acknowledgements"] == ["D1"]
    assert stale.status_code == 404
    assert activity.json()["rebuys"][0]["player"] == "Ann"
    assert activity.json()["eliminations"][0]["player"] == "Bob"


def test_malformed_config_is_rejected_and_previous_config_kept():
    session, _ = make_session()
    previous = session.config

    async def scenario(client):
        prizes = await client.put("/api/config", json={"prizes": [50, 30, 20]})
        players = await client.put("/api/config", json={"players": 5})
        return prizes, players

    prizes, players = run_with_client(session, scenario)

    assert prizes.status_code == 400
    assert prizes.json()["code"] == "BAD_CONFIG"
    assert players.status_code == 400
    assert players.json()["code"] == "BAD_CONFIG"
    assert session.config is previous
