import argparse
import json
import logging
import shutil
import time
from typing import Optional

from catalog import load_builtin_catalog, load_catalog_file, parse_cycles_text
from config import DEFAULT_DB_PATH, DEFAULT_SETTINGS_PATH
from db import ProgressRepository, SettingsRepository, UIStateRepository
from session_service import SessionService
from timer_service import LoggingAudioPlayer
from timing import parse_timing
import requests


def export_progress(db_path: str, out_path: str) -> dict:
    progress = ProgressRepository(db_path).load()
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(progress, f, indent=2, sort_keys=True)
    return progress


def import_progress(db_path: str, in_path: str) -> dict:
    with open(in_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError("progress file must contain a JSON object")
    repo = ProgressRepository(db_path)
    repo.save(data)
    return repo.load()


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def reset_progress(db_path: str) -> None:
    ProgressRepository(db_path).reset_all()


def validate_catalog(path: str) -> tuple[int, int]:
    """Return ``(valid, total)`` record counts for a workout file."""
    with open(path, "r", encoding="utf-8") as f:
        raws = parse_cycles_text(f.read())
    if raws is None:
        raise ValueError(f"could not parse {path}")
    valid = load_catalog_file(path)
    return len(valid), len(raws)


def describe_timing(timing: str, rounds: Optional[int] = None) -> dict:
    return parse_timing(timing, rounds)


def run_headless(
    db_path: str,
    yaml_path: str,
    index: int,
    catalog_path: Optional[str] = None,
    speed: float = 0.0,
    max_ticks: int = 100000,
) -> dict:
    """Drive a workout to completion without a UI.

    ``speed`` is the wall-clock delay between ticks; ``0`` runs as fast as
    possible.
    """
    workouts = load_catalog_file(catalog_path) if catalog_path else load_builtin_catalog()
    session = SessionService(
        workouts,
        ProgressRepository(db_path),
        SettingsRepository(db_path, yaml_path),
        UIStateRepository(db_path),
        LoggingAudioPlayer(),
    )
    state = session.start_workout(index)
    last_phase = None
    ticks = 0
    while state["view"] == "workout" and ticks < max_ticks:
        phase = state["timer"]["phase"]
        if phase != last_phase:
            print(f"{phase:<18} {state['timer']['display_exercise']}")
            last_phase = phase
        if speed:
            time.sleep(speed)
        state = session.tick()
        ticks += 1
    session.close()
    return state


def benchmark(url: str, runs: int = 10) -> None:
    times: list[float] = []
    for _ in range(runs):
        t0 = time.time()
        requests.get(f"{url}/health", timeout=5)
        times.append(time.time() - t0)
    avg = sum(times) / len(times)
    print(f"Average /health response time over {runs} runs: {avg:.4f}s")


def serve(db_path: str, yaml_path: str, host: str, port: int) -> None:
    import uvicorn
    from rest_api import TimerAPI

    api = TimerAPI(db_path=db_path, yaml_path=yaml_path, start_ticker=True)
    uvicorn.run(api.app, host=host, port=port)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Utility commands")
    parser.add_argument("--log-level", default="WARNING")
    sub = parser.add_subparsers(dest="cmd", required=True)

    exp = sub.add_parser("export")
    exp.add_argument("--db", default=DEFAULT_DB_PATH)
    exp.add_argument("--out", default="progress.json")

    imp = sub.add_parser("import")
    imp.add_argument("--db", default=DEFAULT_DB_PATH)
    imp.add_argument("--in", dest="src", default="progress.json")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db", default=DEFAULT_DB_PATH)
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db", default=DEFAULT_DB_PATH)

    rset = sub.add_parser("reset")
    rset.add_argument("--db", default=DEFAULT_DB_PATH)

    val = sub.add_parser("validate")
    val.add_argument("path")

    tim = sub.add_parser("timing")
    tim.add_argument("timing")
    tim.add_argument("--rounds", type=int)

    run = sub.add_parser("run")
    run.add_argument("index", type=int)
    run.add_argument("--db", default=DEFAULT_DB_PATH)
    run.add_argument("--yaml", default=DEFAULT_SETTINGS_PATH)
    run.add_argument("--catalog")
    run.add_argument("--speed", type=float, default=0.0)

    bench = sub.add_parser("benchmark")
    bench.add_argument("--url", default="http://localhost:8000")
    bench.add_argument("--runs", type=int, default=10)

    srv = sub.add_parser("serve")
    srv.add_argument("--db", default=DEFAULT_DB_PATH)
    srv.add_argument("--yaml", default=DEFAULT_SETTINGS_PATH)
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.cmd == "export":
        export_progress(args.db, args.out)
    elif args.cmd == "import":
        import_progress(args.db, args.src)
    elif args.cmd == "backup":
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, args.db)
    elif args.cmd == "reset":
        reset_progress(args.db)
    elif args.cmd == "validate":
        valid, total = validate_catalog(args.path)
        print(f"{valid} of {total} workouts valid")
    elif args.cmd == "timing":
        print(json.dumps(describe_timing(args.timing, args.rounds)))
    elif args.cmd == "run":
        state = run_headless(args.db, args.yaml, args.index, args.catalog, args.speed)
        print(f"finished: {state['view'] == 'finished'}")
    elif args.cmd == "benchmark":
        benchmark(args.url, args.runs)
    elif args.cmd == "serve":
        serve(args.db, args.yaml, args.host, args.port)


if __name__ == "__main__":
    main()
