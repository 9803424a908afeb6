from __future__ import annotations
from dataclasses import asdict
from flask import Flask, Response, current_app, request

import orjson

from ..collectors import process_details
from ..config import CFG
from ..errors import CollectionFailed, ConfirmationMismatch, ConfirmationRequired, NotFound, PortctlError
from ..models import Protocol, SignalPolicy, TcpState, TerminationRequest, outcome_to_dict, plan_to_dict, record_to_dict
from ..render import ViewMode, grouped_dict
from .ui import render_html

ERROR_STATUS = {
    NotFound: 404,
    ConfirmationRequired: 400,
    ConfirmationMismatch: 409,
    CollectionFailed: 503,
}

def dumps(obj) -> str:
    return orjson.dumps(obj).decode()

def json_response(obj, status: int = 200) -> Response:
    return Response(dumps(obj), status=status, mimetype="application/json")

def _request_from_body(body: dict, with_confirmation: bool) -> TerminationRequest:
    def _int(key):
        v = body.get(key)
        if v is None or v == "":
            return None
        if isinstance(v, bool) or not isinstance(v, (int, str)) or not str(v).isdigit():
            raise ValueError(f"{key} must be a non-negative integer, got {v!r}")
        return int(v)
    policy = SignalPolicy(body.get("policy") or SignalPolicy.GRACEFUL_THEN_FORCEFUL.value)
    return TerminationRequest(
        pid=_int("pid"), port=_int("port"), policy=policy,
        confirmation=body.get("confirmation") if with_confirmation else None,
    )

def create_app(cfg: CFG, session, engine) -> Flask:
    app = Flask(__name__)

    @app.errorhandler(PortctlError)
    def portctl_error(e: PortctlError):
        status = next((s for cls, s in ERROR_STATUS.items() if isinstance(e, cls)), 500)
        current_app.logger.warning("%s: %s", e.kind, e)
        return json_response({"ok": False, "error": e.kind, "detail": str(e)}, status)

    @app.errorhandler(ValueError)
    def bad_request(e: ValueError):
        return json_response({"ok": False, "error": "bad_request", "detail": str(e)}, 400)

    @app.get("/")
    def index():
        return Response(render_html(cfg.include_udp), mimetype="text/html")

    @app.get("/api/sockets")
    def api_sockets():
        mode = ViewMode(request.args.get("view", ViewMode.PORT.value))
        proto = request.args.get("proto")
        states = [TcpState.parse(s) for s in request.args.getlist("state") if s]
        idx = session.index
        view = idx.filter(protocols=[Protocol.parse(proto)] if proto else None, states=states or None)
        return json_response({
            "generation": view.generation,
            "created_at": idx.created_at,
            "view": mode.value,
            "groups": grouped_dict(view, mode),
        })

    @app.get("/api/ports/<int:port>")
    def api_port(port: int):
        idx = session.index
        return json_response({"generation": idx.generation, "port": port,
                              "sockets": [record_to_dict(r) for r in idx.sockets_by_port(port)]})

    @app.get("/api/pids/<int:pid>")
    def api_pid(pid: int):
        idx = session.index
        return json_response({"generation": idx.generation, "pid": pid,
                              "sockets": [record_to_dict(r) for r in idx.sockets_by_pid(pid)]})

    @app.get("/api/process/<int:pid>")
    def api_process(pid: int):
        d = process_details(pid)
        if d is None:
            raise NotFound("pid", pid)
        return json_response({"ok": True, "process": asdict(d)})

    @app.post("/api/refresh")
    def api_refresh():
        idx = session.refresh()
        current_app.logger.info("index rebuilt: generation %d", idx.generation)
        return json_response({"ok": True, "generation": idx.generation, "sockets": len(idx),
                              "ports": len(idx.all_ports()), "pids": len(idx.all_pids()),
                              "rejected": idx.rejected})

    @app.post("/api/kill/plan")
    def api_kill_plan():
        body = request.get_json(silent=True) or {}
        plan = engine.plan(_request_from_body(body, with_confirmation=False))
        return json_response({"ok": True, "plan": plan_to_dict(plan)})

    @app.post("/api/kill")
    def api_kill():
        body = request.get_json(silent=True) or {}
        outcomes = engine.terminate(_request_from_body(body, with_confirmation=True))
        current_app.logger.info("termination of %s: %d outcome(s)", body, len(outcomes))
        return json_response({"ok": all(o.succeeded for o in outcomes),
                              "outcomes": [outcome_to_dict(o) for o in outcomes]})

    return app
