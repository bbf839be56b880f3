#!/usr/bin/env python3
"""
Photo-check end-to-end smoke test.

What it does:
- Starts the FastAPI server via uvicorn on a random port with a throwaway DATA_DIR.
- Drives a PhotoCheckSession against it: check, rename, select, save, delete.
- Prints the rendered workflow sentence and the server's activity log.
"""

from __future__ import annotations

import argparse
import json
import os
import socket
import subprocess
import sys
import tempfile
import time
from pathlib import Path
from typing import Any, Dict

import requests

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services.api.photo_check.deps import build_photo_check_session  # noqa: E402


def _find_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return int(s.getsockname()[1])


def _wait_health(base_url: str, timeout_sec: float = 10.0) -> None:
    deadline = time.monotonic() + timeout_sec
    last_err = None
    while time.monotonic() < deadline:
        try:
            r = requests.get(f"{base_url}/health", timeout=1.5)
            if r.status_code == 200:
                return
            last_err = RuntimeError(f"health status {r.status_code}")
        except requests.RequestException as exc:
            last_err = exc
        time.sleep(0.15)
    raise RuntimeError(f"server health not ready: {last_err}")


def _sample_payload() -> Dict[str, Any]:
    return {
        "results": [
            {
                "index": 1,
                "name": "page-1.jpg",
                "attempts": [
                    {
                        "attempt": 1,
                        "provider": "qwen",
                        "problems": [
                            {"index": 1, "question": "x + 1 = 3", "studentAnswer": "x = 2", "isCorrect": True},
                            {"index": 2, "question": "2x = 8", "studentAnswer": "x = 3", "isCorrect": "wrong"},
                        ],
                    },
                    {
                        "attempt": 2,
                        "provider": "kimi",
                        "problems": [
                            {"index": 1, "question": "x + 1 = 3", "isCorrect": False, "analysis": "sign error"},
                        ],
                    },
                ],
            },
            {
                "index": 2,
                "name": "page-2.jpg",
                "summary": {"total": 2, "correct": 1},
                "problems": [{"index": 1, "question": "3 × 3", "studentAnswer": "9", "isCorrect": "对"}],
            },
        ]
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Photo-check end-to-end smoke test")
    parser.add_argument("--timeout", type=float, default=12.0, help="server startup timeout")
    parser.add_argument("--alias", default="Smoke run")
    args = parser.parse_args()

    data_dir = Path(tempfile.mkdtemp(prefix="photo_check_smoke_"))
    api_port = _find_free_port()
    base_url = f"http://127.0.0.1:{api_port}"
    env = os.environ.copy()
    env["DATA_DIR"] = str(data_dir)
    env.setdefault("LOG_LEVEL", "WARNING")

    cmd = [sys.executable, "-m", "uvicorn", "services.api.app:app", "--host", "127.0.0.1", "--port", str(api_port)]
    api_proc = subprocess.Popen(cmd, cwd=str(ROOT), env=env, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)
    try:
        _wait_health(base_url, timeout_sec=float(args.timeout))

        session = build_photo_check_session(base_url=base_url)
        report = session.complete_check(_sample_payload())
        print("[REPORT]")
        print(report.tree["workflow"])
        print(report.tree["overallText"])
        if session.message:
            print(f"message: {session.message}")

        record_id = report.record_id or ""
        session.rename_history(record_id, args.alias)
        for key in report.lookup:
            session.toggle(key, True)
        saved = session.save_selected(lambda payload: payload, subject="math")
        print(f"[ENTRIES] {len(saved)} prepared")
        print(json.dumps(saved[0], ensure_ascii=False, indent=2))

        session.load_history()
        print("[HISTORY]", [(item.id, item.alias) for item in session.history.items])
        session.delete_history(record_id)
        print("[DELETED]", record_id, "report cleared" if session.report is None else "report kept")

        logs = requests.get(f"{base_url}/photo-check/logs", timeout=5).json().get("logs") or []
        print("[ACTIVITY]")
        for entry in reversed(logs):
            print(f"- {entry.get('timestamp')} {entry.get('action')} {entry.get('status')}")
    finally:
        try:
            api_proc.terminate()
            api_proc.wait(timeout=4)
        except subprocess.TimeoutExpired:
            api_proc.kill()


if __name__ == "__main__":
    main()
