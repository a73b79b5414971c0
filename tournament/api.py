"""HTTP surface of the tournament backend (FastAPI).

Routes mirror what the settings page and display board already call:
dealer registration, round/rebuy/elimination reports, plus the clock
controls and the structure/settings documents.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tourney_core.errors import ConflictError, NotFoundError, TournamentError, ValidationError
from tourney_core.models import now_ts
from tourney_core.payloads import is_truthy, parse_dealer_payload

from .session import TournamentSession

LOGGER = logging.getLogger("tourney_clock.api")


async def _json_body(request: Request) -> Any:
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise ValidationError("BAD_JSON", "Request body is not valid JSON.") from exc


def _require_mapping(body: Any) -> Mapping[str, Any]:
    if not isinstance(body, Mapping):
        raise ValidationError("BAD_SCHEMA", "Request body must be a JSON object.")
    return body


def create_app(session: TournamentSession) -> FastAPI:
    app = FastAPI(title="Tourney Clock", version="0.1.0")
    app.state.session = session
    store = session.store
    announcer = session.announcer

    @app.exception_handler(TournamentError)
    async def tournament_error_handler(request: Request, exc: TournamentError) -> JSONResponse:
        if exc.http_status >= 500:
            LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc.msg)
        return JSONResponse(status_code=exc.http_status, content={"error": exc.msg, "code": exc.code})

    # Tournament state ------------------------------------------------

    @app.get("/api/health")
    async def health() -> Dict[str, Any]:
        return {"status": "ok", "dealers": len(store.dealers())}

    @app.get("/api/state")
    async def state() -> Dict[str, Any]:
        payload = store.get_state()
        payload["serverTime"] = now_ts()
        return payload

    @app.get("/api/activity")
    async def activity(limit: int = 10) -> Dict[str, Any]:
        return store.recent_activity(limit)

    @app.get("/api/summary")
    async def summary(addons: int = 0) -> Dict[str, Any]:
        return session.summary(addon_count=max(0, addons))

    # Dealers ---------------------------------------------------------

    @app.get("/api/dealers")
    async def list_dealers() -> Dict[str, Any]:
        return {"dealers": [dealer.to_dict() for dealer in store.dealers()]}

    @app.post("/api/dealers", status_code=201)
    async def assign_dealer(request: Request) -> Dict[str, Any]:
        assignment = parse_dealer_payload(await _json_body(request))
        owner = store.find_dealer_by_table(assignment.table)
        if owner is not None and owner.id != assignment.id:
            raise ConflictError("TABLE_TAKEN", f"Table {assignment.table} is already assigned to {owner.label}.")
        dealer = store.assign_dealer(assignment)
        return {"dealer": dealer.to_dict()}

    @app.delete("/api/dealers/{dealer_id}")
    async def unassign_dealer(dealer_id: str) -> Dict[str, Any]:
        removed = store.unassign_dealer(dealer_id)
        if removed is None:
            raise NotFoundError("DEALER_NOT_FOUND", "Dealer not found.")
        session.pending_actions.pop(removed.id, None)
        return {"dealer": removed.to_dict()}

    # Reports ---------------------------------------------------------

    async def post_round(request: Request) -> Dict[str, Any]:
        result = await announcer.announce_round(await _json_body(request))
        return result.to_dict()

    # The display board posts to /round; /api/rounds is the documented path.
    app.add_api_route("/api/rounds", post_round, methods=["POST"])
    app.add_api_route("/round", post_round, methods=["POST"])

    @app.post("/api/rebuys")
    async def post_rebuy(request: Request) -> Dict[str, Any]:
        result = await announcer.submit_rebuy(await _json_body(request))
        return result.to_dict()

    @app.post("/api/eliminations")
    async def post_elimination(request: Request) -> Dict[str, Any]:
        result = await announcer.submit_elimination(await _json_body(request))
        return result.to_dict()

    # Clock -----------------------------------------------------------

    @app.get("/api/clock")
    async def clock() -> Dict[str, Any]:
        return session.snapshot()

    @app.post("/api/clock/start")
    async def clock_start() -> Dict[str, Any]:
        return await session.start()

    @app.post("/api/clock/pause")
    async def clock_pause() -> Dict[str, Any]:
        return await session.pause()

    @app.post("/api/clock/advance")
    async def clock_advance() -> Dict[str, Any]:
        return await session.advance()

    @app.post("/api/clock/retreat")
    async def clock_retreat() -> Dict[str, Any]:
        return await session.retreat()

    @app.post("/api/clock/reset")
    async def clock_reset() -> Dict[str, Any]:
        return await session.reset_level()

    @app.post("/api/clock/restart")
    async def clock_restart(request: Request) -> Dict[str, Any]:
        body = _require_mapping(await _json_body(request))
        if not is_truthy(body.get("confirm")):
            raise ValidationError("CONFIRM_REQUIRED", "Restarting the tournament needs confirm: true.")
        return await session.restart()

    # Structure and settings ------------------------------------------

    @app.get("/api/structure")
    async def get_structure() -> Dict[str, Any]:
        return {"levels": session.structure()}

    @app.put("/api/structure")
    async def put_structure(request: Request) -> Dict[str, Any]:
        body = await _json_body(request)
        levels = body.get("levels") if isinstance(body, Mapping) else body
        if not isinstance(levels, list):
            raise ValidationError("BAD_STRUCTURE", "Structure must be a list of levels.")
        clock_state = await session.load_structure(levels)
        return {"levels": session.structure(), "clock": clock_state}

    @app.get("/api/config")
    async def get_config() -> Dict[str, Any]:
        return {"config": session.config.to_dict()}

    @app.put("/api/config")
    async def put_config(request: Request) -> Dict[str, Any]:
        config = session.update_config(_require_mapping(await _json_body(request)))
        return {"config": config.to_dict()}

    @app.get("/api/acks/{round_id}")
    async def round_acks(round_id: str) -> Dict[str, Any]:
        if announcer.find_round(round_id) is None:
            raise NotFoundError("ROUND_UNKNOWN", f"Round {round_id} is no longer tracked.")
        return {"round_id": round_id, "acknowledgements": announcer.acknowledgements(round_id)}

    return app
