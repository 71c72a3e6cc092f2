"""Manzai Writer — dev launcher. Starts the API server in watch mode."""

import argparse
import os
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
BACKEND_PORT = os.getenv("BACKEND_PORT", "13013")


def main():
    parser = argparse.ArgumentParser(description="Manzai Writer dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Usage ledger directory (default: ./data)")
    parser.add_argument("--unmetered", action="store_true",
                        help="Serve without the usage ledger gate")
    args = parser.parse_args()

    # Build env for the subprocess so the app picks up the same settings
    env = os.environ.copy()
    if args.data_dir:
        env["MANZAI_DATA_DIR"] = str(args.data_dir.resolve())
    if args.unmetered:
        env["MANZAI_METERING"] = "unmetered"

    print(f"Starting backend on http://localhost:{BACKEND_PORT} ...")
    proc = subprocess.Popen(
        ["uvicorn", "backend.app:app", "--reload", "--host", HOST, "--port", BACKEND_PORT],
        cwd=ROOT, env=env,
    )
    try:
        proc.wait()
    except KeyboardInterrupt:
        print("\nShutting down...")
        proc.terminate()
        proc.wait()
    sys.exit(proc.returncode or 0)


if __name__ == "__main__":
    main()
