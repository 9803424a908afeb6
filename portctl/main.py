from __future__ import annotations
import argparse, logging, sys

import orjson

from .config import CFG, init_cfg_from_args
from .collectors import collect, lookup_process, process_details
from .errors import CollectionFailed, ConfirmationMismatch, NotFound
from .index import Session
from .models import Protocol, TcpState, TerminationRequest, outcome_to_dict, plan_to_dict
from .render import ViewMode, grouped_dict, render_details, render_index, render_outcome, render_plan
from .termination import SafetyPolicy, TerminationEngine

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_ERROR = 2

def parse_args(argv=None):
    ap = argparse.ArgumentParser(prog='portctl', description='List sockets by port/process and terminate their owners safely')
    ap.add_argument('-v', '--verbose', action='store_true', help='debug logging')
    ap.add_argument('--no-udp', action='store_true', help='skip UDP sockets')
    sub = ap.add_subparsers(dest='command', required=True)

    ls = sub.add_parser('list', help='show sockets grouped by port or by process')
    ls.add_argument('--view', choices=[m.value for m in ViewMode], default=ViewMode.PORT.value)
    ls.add_argument('--port', type=int, default=None)
    ls.add_argument('--pid', type=int, default=None)
    ls.add_argument('--tcp', action='store_true', help='TCP only')
    ls.add_argument('--udp', action='store_true', help='UDP only')
    ls.add_argument('--state', action='append', default=[], help='TCP state filter, repeatable (e.g. LISTEN)')
    ls.add_argument('--json', action='store_true')

    dt = sub.add_parser('details', help='show process details')
    dt.add_argument('pid', type=int)

    kl = sub.add_parser('kill', help='terminate the process(es) behind a PID or port')
    target = kl.add_mutually_exclusive_group(required=True)
    target.add_argument('--pid', type=int)
    target.add_argument('--port', type=int)
    kl.add_argument('--force-only', action='store_true', help='skip the graceful signal')
    kl.add_argument('--grace', type=float, default=None, help='seconds to wait after each signal (default 0.5)')
    kl.add_argument('--yes', action='store_true', help='do not prompt for confirmation')
    kl.add_argument('--critical-pid', action='append', default=[], help='comma-separated PIDs that must never be signalled')
    kl.add_argument('--rules', type=str, default=None, help='YAML/JSON protection rules (default: bundled protected.yaml)')
    kl.add_argument('--no-default-rules', action='store_true', help='do not load the bundled protection rules')
    kl.add_argument('--json', action='store_true')

    sv = sub.add_parser('serve', help='web front end')
    sv.add_argument('--host', default='127.0.0.1')
    sv.add_argument('--port', type=int, default=8765)
    sv.add_argument('--rules', type=str, default=None)
    sv.add_argument('--no-default-rules', action='store_true')
    return ap.parse_args(argv)

def build_engine(cfg: CFG, session: Session) -> TerminationEngine:
    safety = SafetyPolicy(critical_pids=cfg.critical_pids, rules=cfg.rules, proc_lookup=lookup_process)
    return TerminationEngine(session, safety=safety, grace_interval=cfg.grace_interval, poll_interval=cfg.poll_interval)

def cmd_list(args, cfg: CFG, session: Session) -> int:
    idx = session.refresh()
    protos = [p for p, on in ((Protocol.TCP, args.tcp), (Protocol.UDP, args.udp)) if on]
    states = [TcpState.parse(s) for s in args.state]
    pred = None
    if args.port is not None or args.pid is not None:
        pred = lambda r: (args.port is None or r.local_port == args.port) and (args.pid is None or r.owning_pid == args.pid)
    view = idx.filter(protocols=protos or None, states=states or None, predicate=pred)
    mode = ViewMode(args.view)
    if args.json:
        print(orjson.dumps({"generation": view.generation, "view": mode.value, "groups": grouped_dict(view, mode)},
                           option=orjson.OPT_INDENT_2).decode())
    else:
        print(render_index(view, mode))
    return EXIT_OK

def cmd_details(args, cfg: CFG, session: Session) -> int:
    d = process_details(args.pid)
    print(render_details(d))
    return EXIT_OK if d else EXIT_ERROR

def cmd_kill(args, cfg: CFG, session: Session) -> int:
    session.refresh()
    engine = build_engine(cfg, session)
    req = TerminationRequest(pid=args.pid, port=args.port, policy=cfg.policy)
    plan = engine.plan(req)
    if args.json:
        print(orjson.dumps(plan_to_dict(plan), option=orjson.OPT_INDENT_2).decode(), file=sys.stderr)
    else:
        print(render_plan(plan))
    if not plan.allowed_pids:
        print("[warn] every target is protected; nothing to do")
        return EXIT_FAILED
    if not args.yes:
        answer = input(f"Proceed with {cfg.policy.value} termination? [y/N] ").strip().lower()
        if answer not in ('y', 'yes'):
            print("[*] aborted, no signal sent")
            return EXIT_ERROR
    req = TerminationRequest(pid=args.pid, port=args.port, policy=cfg.policy, confirmation=plan.token)
    outcomes = engine.terminate(req)
    if args.json:
        print(orjson.dumps([outcome_to_dict(o) for o in outcomes], option=orjson.OPT_INDENT_2).decode())
    else:
        for o in outcomes:
            print(render_outcome(o))
    return EXIT_OK if all(o.succeeded for o in outcomes) else EXIT_FAILED

def cmd_serve(args, cfg: CFG, session: Session) -> int:
    from .web import create_app
    session.refresh()
    app = create_app(cfg, session, build_engine(cfg, session))
    print(f"[*] Serving on http://{args.host}:{args.port}")
    app.run(host=args.host, port=args.port, debug=False, use_reloader=False)
    return EXIT_OK

COMMANDS = {'list': cmd_list, 'details': cmd_details, 'kill': cmd_kill, 'serve': cmd_serve}

def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="[%(levelname)s] %(name)s: %(message)s")
    try:
        cfg = init_cfg_from_args(args)
    except ValueError as e:
        print(f"[error] {e}", file=sys.stderr)
        return EXIT_ERROR
    session = Session(lambda: collect(cfg.include_udp))
    try:
        return COMMANDS[args.command](args, cfg, session)
    except (CollectionFailed, NotFound, ConfirmationMismatch) as e:
        print(f"[error] {e}", file=sys.stderr)
        return EXIT_ERROR

if __name__ == '__main__':
    sys.exit(main())
