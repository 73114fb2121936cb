#!/usr/bin/env python3
"""
Talebox Service Entrypoint

This script determines which process to run based on the SERVICE_TYPE
environment variable.

SERVICE_TYPE values:
  - web (default): Run the FastAPI web server via gunicorn
  - worker: Run the story job worker in loop mode
"""

import os
import sys

SERVICE_TYPE = os.environ.get("SERVICE_TYPE", "web")
PORT = os.environ.get("PORT", "8080")
WORKER_INTERVAL = os.environ.get("WORKER_INTERVAL", "15")

print("=" * 50)
print(f"Talebox Service: {SERVICE_TYPE}")
print("=" * 50)

if SERVICE_TYPE == "web":
    print("Starting web server (gunicorn)...")
    cmd = [
        "gunicorn", "talebox.api.main:app",
        "--workers", "2",
        "--worker-class", "uvicorn.workers.UvicornWorker",
        "--bind", f"0.0.0.0:{PORT}",
        "--timeout", "900",
        "--graceful-timeout", "120"
    ]
elif SERVICE_TYPE == "worker":
    print("Starting story worker...")
    cmd = [sys.executable, "-m", "talebox.jobs.run_worker", "--loop", "--interval", WORKER_INTERVAL]
else:
    print(f"ERROR: Unknown SERVICE_TYPE: {SERVICE_TYPE}")
    print("Valid values: web, worker")
    sys.exit(1)

print(f"Running: {' '.join(cmd)}")
print("=" * 50)

# Replace this process with the actual command
os.execvp(cmd[0], cmd)
