from __future__ import annotations

import argparse
import json
import shlex
import sys
from pathlib import Path
from typing import Any, Optional

from .board.file_board import FileTaskBoard
from .config import get_executor_config, get_logging_config, load_config
from .errors import OrchestrationError
from .logging_utils import configure_logging
from .orchestrator.service import OrchestrationEngine, create_engine
from .workers.drain import CommandExecutor, drain_loop, drain_once


def _resolve_project_dir(project_dir: Optional[str]) -> Path:
    return Path(project_dir).expanduser().resolve() if project_dir else Path.cwd().resolve()


def _ctx(project_dir: Optional[str]) -> OrchestrationEngine:
    return create_engine(_resolve_project_dir(project_dir))


def _emit(payload: Any) -> int:
    sys.stdout.write(json.dumps(payload, indent=2) + '\n')
    return 0


def _board(engine: OrchestrationEngine) -> FileTaskBoard:
    board = engine.reconciler.board
    if not isinstance(board, FileTaskBoard):
        raise OrchestrationError('No file-backed board is configured')
    return board


def _plan(args: argparse.Namespace) -> int:
    engine = _ctx(args.project_dir)
    plan = engine.plan_task(args.parent_task_id, args.title, args.description or '')
    agents = engine.execute_next_ready(plan.id) if args.execute else []
    if agents:
        plan = engine.get_plan(plan.id)
    return _emit({'plan': plan.to_dict(), 'agents': [agent.to_dict() for agent in agents]})


def _status(args: argparse.Namespace) -> int:
    return _emit(_ctx(args.project_dir).get_plan_status(args.plan_id))


def _plans(args: argparse.Namespace) -> int:
    plans = _ctx(args.project_dir).list_plans(args.parent_task_id)
    return _emit({'plans': [plan.to_dict() for plan in plans]})


def _ready(args: argparse.Namespace) -> int:
    subtasks = _ctx(args.project_dir).get_ready_subtasks(args.plan_id)
    return _emit({'subtasks': [subtask.to_dict() for subtask in subtasks]})


def _execute_next(args: argparse.Namespace) -> int:
    agents = _ctx(args.project_dir).execute_next_ready(args.plan_id)
    return _emit({'agents': [agent.to_dict() for agent in agents]})


def _pending(args: argparse.Namespace) -> int:
    entries = _ctx(args.project_dir).get_pending_spawns()
    return _emit({'entries': [entry.to_dict() for entry in entries]})


def _spawned(args: argparse.Namespace) -> int:
    agent = _ctx(args.project_dir).mark_spawn_processed(args.agent_id, args.session_key)
    return _emit({'agent': agent.to_dict()})


def _result(args: argparse.Namespace) -> int:
    agent, subtask = _ctx(args.project_dir).report_result(args.agent_id, args.summary, args.output)
    return _emit({'agent': agent.to_dict(), 'subtask': subtask.to_dict()})


def _fail(args: argparse.Namespace) -> int:
    agent, subtask = _ctx(args.project_dir).report_failure(args.agent_id, args.error)
    return _emit({'agent': agent.to_dict(), 'subtask': subtask.to_dict()})


def _cancel(args: argparse.Namespace) -> int:
    agent = _ctx(args.project_dir).cancel_agent(args.agent_id)
    return _emit({'agent': agent.to_dict()})


def _sync(args: argparse.Namespace) -> int:
    return _emit(_ctx(args.project_dir).sync_board(args.plan_id))


def _drain(args: argparse.Namespace) -> int:
    engine = _ctx(args.project_dir)
    executor_cfg = get_executor_config(engine.container.config.load())
    command = shlex.split(args.executor_command) if args.executor_command else executor_cfg['command']
    if not command:
        sys.stderr.write('No executor command: pass --executor-command or set executor.command in config.yaml\n')
        return 1
    executor = CommandExecutor(command, timeout_seconds=executor_cfg['timeout_seconds'])
    auto_advance = executor_cfg['auto_advance'] and not args.no_advance
    if args.once:
        report = drain_once(engine, executor, auto_advance=auto_advance)
    else:
        report = drain_loop(
            engine,
            executor,
            poll_interval_seconds=args.poll_interval if args.poll_interval is not None else executor_cfg['poll_interval_seconds'],
            auto_advance=auto_advance,
            until_idle=args.until_idle,
        )
    return _emit(report.to_dict())


def _board_add(args: argparse.Namespace) -> int:
    board = _board(_ctx(args.project_dir))
    try:
        card = board.add_card(args.title, args.description or '', lane=args.lane, card_id=args.card_id)
    except ValueError as exc:
        sys.stderr.write(str(exc) + '\n')
        return 1
    return _emit({'card': card.to_dict()})


def _board_show(args: argparse.Namespace) -> int:
    board = _board(_ctx(args.project_dir))
    if args.card_id:
        card = board.find_task_by_id(args.card_id)
        if card is None:
            sys.stderr.write(f'Card not found: {args.card_id}\n')
            return 1
        return _emit({'card': card.to_dict()})
    return _emit({'lanes': board.lanes, 'cards': [card.to_dict() for card in board.list_cards(args.lane)]})


def _server(args: argparse.Namespace) -> int:
    import uvicorn

    from .server import create_app

    app = create_app(project_dir=_resolve_project_dir(args.project_dir))
    uvicorn.run(app, host=args.host, port=args.port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Subtask orchestrator: plan tasks into sub-tasks and track their execution')
    parser.add_argument('--project-dir', default=None, help='Target project directory (default: current working directory)')
    parser.add_argument('--log-level', default=None, help='Log level (default: logging.level from config, else INFO)')
    subparsers = parser.add_subparsers(dest='command', required=True)

    server = subparsers.add_parser('server', help='Start the HTTP API server')
    server.add_argument('--host', default='127.0.0.1')
    server.add_argument('--port', default=8000, type=int)
    server.add_argument('--reload', action='store_true')
    server.set_defaults(func=_server)

    plan = subparsers.add_parser('plan', help='Decompose a task into a plan of sub-tasks')
    plan.add_argument('parent_task_id')
    plan.add_argument('title')
    plan.add_argument('--description', default='')
    plan.add_argument('--execute', action='store_true', help='Queue agents for ready sub-tasks right away')
    plan.set_defaults(func=_plan)

    status = subparsers.add_parser('status', help='Show a plan with its agents and progress')
    status.add_argument('plan_id')
    status.set_defaults(func=_status)

    plans = subparsers.add_parser('plans', help='List plans')
    plans.add_argument('--parent-task-id', default=None)
    plans.set_defaults(func=_plans)

    ready = subparsers.add_parser('ready', help='List sub-tasks ready to run')
    ready.add_argument('plan_id')
    ready.set_defaults(func=_ready)

    execute_next = subparsers.add_parser('execute-next', help='Queue agents for every ready sub-task')
    execute_next.add_argument('plan_id')
    execute_next.set_defaults(func=_execute_next)

    pending = subparsers.add_parser('pending', help='List pending spawn queue entries')
    pending.set_defaults(func=_pending)

    spawned = subparsers.add_parser('spawned', help='Mark a queued agent as spawned by the executor')
    spawned.add_argument('agent_id')
    spawned.add_argument('session_key')
    spawned.set_defaults(func=_spawned)

    result = subparsers.add_parser('result', help='Report a successful agent result')
    result.add_argument('agent_id')
    result.add_argument('summary')
    result.add_argument('--output', default=None, help='Output handed to dependent sub-tasks (default: the summary)')
    result.set_defaults(func=_result)

    fail = subparsers.add_parser('fail', help='Report an agent failure')
    fail.add_argument('agent_id')
    fail.add_argument('error')
    fail.set_defaults(func=_fail)

    cancel = subparsers.add_parser('cancel', help='Cancel an agent and its sub-task')
    cancel.add_argument('agent_id')
    cancel.set_defaults(func=_cancel)

    sync = subparsers.add_parser('sync', help='Refresh progress comments on the board')
    sync.add_argument('--plan-id', default=None)
    sync.set_defaults(func=_sync)

    drain = subparsers.add_parser('drain', help='Run pending spawns with a local command')
    drain.add_argument('--executor-command', dest='executor_command', default=None, help='Executor command; the task brief is passed on stdin')
    drain.add_argument('--once', action='store_true', help='Process the current queue once and exit')
    drain.add_argument('--until-idle', action='store_true', help='Loop until no pending spawns remain')
    drain.add_argument('--no-advance', action='store_true', help='Do not queue newly ready sub-tasks after a result')
    drain.add_argument('--poll-interval', default=None, type=float)
    drain.set_defaults(func=_drain)

    board = subparsers.add_parser('board', help='Inspect the file-backed task board')
    board_sub = board.add_subparsers(dest='board_cmd', required=True)
    badd = board_sub.add_parser('add', help='Add a card')
    badd.add_argument('title')
    badd.add_argument('--description', default='')
    badd.add_argument('--lane', default=None)
    badd.add_argument('--card-id', default=None)
    badd.set_defaults(func=_board_add)
    bshow = board_sub.add_parser('show', help='Show cards, or one card by ID')
    bshow.add_argument('card_id', nargs='?', default=None)
    bshow.add_argument('--lane', default=None)
    bshow.set_defaults(func=_board_show)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = getattr(args, 'func', None)
    if handler is None:
        parser.print_help()
        return 1
    logging_cfg = get_logging_config(load_config(_resolve_project_dir(args.project_dir)))
    log_file = logging_cfg.get('file')
    configure_logging(args.log_level or logging_cfg['level'], Path(log_file) if log_file else None)
    try:
        return int(handler(args) or 0)
    except OrchestrationError as exc:
        sys.stderr.write(exc.message + '\n')
        return 1


if __name__ == '__main__':
    raise SystemExit(main())
