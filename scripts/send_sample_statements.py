#!/usr/bin/env python3
"""Send a short learning session to a running API and print the result.

RUN:  python scripts/send_sample_statements.py

Posts initialized -> a few experienced -> passed statements for one learner
against the dev sample course, then reads the learner's progress back.

Prerequisites:
  - The API must be running in dev mode (APP_ENV=dev seeds the sample
    course): uvicorn app.main:app --port 8000
  - Without REDIS_URL, materialization runs in-process right after each
    response, so the progress row is there by the time we read it.
"""

from __future__ import annotations

import sys
import time
from datetime import UTC, datetime, timedelta

import httpx

BASE_URL = "http://localhost:8000"
ACTIVITY = "https://example.com/courses/sample-course"
LEARNER = "learner@example.com"
ADL = "http://adlnet.gov/expapi/verbs/"


def _statement(verb: str, activity: str, at: datetime, **extra) -> dict:
    return {
        "actor": {"mbox": f"mailto:{LEARNER}", "objectType": "Agent"},
        "verb": {"id": ADL + verb},
        "object": {"id": activity},
        "timestamp": at.isoformat(),
        **extra,
    }


def main() -> None:
    start = datetime.now(UTC) - timedelta(minutes=10)
    statements = [
        _statement("initialized", ACTIVITY, start),
        _statement("experienced", f"{ACTIVITY}/module-1/slide-1", start + timedelta(seconds=40)),
        _statement("experienced", f"{ACTIVITY}/module-1/slide-2", start + timedelta(seconds=95)),
        _statement("answered", f"{ACTIVITY}/module-1/quiz-1", start + timedelta(seconds=150)),
        _statement(
            "passed",
            ACTIVITY,
            start + timedelta(seconds=200),
            result={"success": True, "score": {"scaled": 0.85}},
        ),
    ]

    with httpx.Client(base_url=BASE_URL, timeout=10) as client:
        resp = client.post("/xapi/statements", json=statements)
        if resp.status_code != 200:
            print(f"POST /xapi/statements failed: {resp.status_code} {resp.text}")
            sys.exit(1)
        print(f"Stored {len(resp.json())} statements")

        time.sleep(0.5)
        resp = client.get("/v1/progress/sample-course", params={"actor": LEARNER})
        print(f"GET /v1/progress/sample-course -> {resp.status_code}")
        print(resp.text)


if __name__ == "__main__":
    main()
