from __future__ import annotations

import subprocess
import sys
from pathlib import Path

from check_rules import DEFAULT_DATA_PATH, check_data

REPO_ROOT = Path(__file__).resolve().parents[1]
BACKEND_ENTRYPOINT = REPO_ROOT / "backend" / "server.py"


def run_local() -> int:
    result = check_data(str(Path(DEFAULT_DATA_PATH).resolve()))
    print(result.summary(), flush=True)
    if not result.passed:
        print("[run-local] ERROR: data checks failed; fix data/ before starting.", file=sys.stderr, flush=True)
        return 1

    if not BACKEND_ENTRYPOINT.is_file():
        print(
            f"[run-local] ERROR: backend entrypoint missing: {BACKEND_ENTRYPOINT}",
            file=sys.stderr,
            flush=True,
        )
        return 1

    print("[run-local] Starting backend server...", flush=True)
    try:
        proc = subprocess.run([sys.executable, str(BACKEND_ENTRYPOINT)], cwd=str(REPO_ROOT))
        return proc.returncode
    except KeyboardInterrupt:
        print("\n[run-local] Stopped by user.", flush=True)
        return 130


def main() -> int:
    return run_local()


if __name__ == "__main__":
    raise SystemExit(main())
