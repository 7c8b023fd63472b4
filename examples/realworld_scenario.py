"""End-to-end scenario demonstrating the Python client API."""

from __future__ import annotations

import os
import random
import string
from typing import Any

from docindex_client import (
    CallContext,
    DocIndexClient,
    HttpFailureError,
    PollPolicy,
    PollTimeoutError,
    ResponseMeta,
    TaskRecord,
    current_call_context,
)

SERVER_URL = os.getenv("DOCINDEX_DEMO_URL", "http://localhost:7700")
API_KEY = os.getenv("DOCINDEX_API_KEY", "masterKey")


def log_section(title: str) -> None:
    print("\n" + "=" * 80)
    print(title)
    print("=" * 80)


def capture_response(meta: ResponseMeta, body: bytes) -> bytes:
    context = current_call_context()
    if context is not None and "captured" in context:
        context["captured"].append((meta.status, len(body)))
    return body


def report(record: TaskRecord) -> None:
    if record.is_successful:
        print(f"→ task {record.uid} {record.type} succeeded in {record.duration}")
    else:
        print(f"→ task {record.uid} {record.type} ended {record.status}: {record.error_message}")


def pretty_rows(rows: list[dict[str, Any]]) -> None:
    if not rows:
        print("  (no data)")
        return
    for row in rows:
        print("  " + repr(row))


def main() -> None:
    log_section("Document index Python client: Real-World Scenario")
    print(f"Connecting to {SERVER_URL}")
    log_level = os.getenv("DOCINDEX_CLIENT_LOG", "info")
    client = DocIndexClient(
        server_url=SERVER_URL,
        api_key=API_KEY,
        log_level=log_level,
        poll_policy=PollPolicy(interval=0.1, timeout=30.0, backoff=1.5),
        response_filter=capture_response,
    )
    if not client.is_healthy():
        raise SystemExit(f"Cannot reach {SERVER_URL}")

    index_uid = "movies_" + "".join(random.choices(string.ascii_lowercase, k=6))

    log_section("Step 1: Create Index")
    handle = client.submit_task("POST", "/indexes", client.json({"uid": index_uid, "primaryKey": "id"}))
    print(f"→ enqueued task {handle.task_uid} ({handle.status})")
    report(client.wait_for_task(handle))

    log_section("Step 2: Add Documents")
    movies = [
        {"id": 1, "title": "Carol", "genres": ["Romance", "Drama"]},
        {"id": 2, "title": "Wonder Woman", "genres": ["Action", "Adventure"]},
        {"id": 3, "title": "Life of Pi", "genres": ["Adventure", "Drama"]},
    ]
    handle = client.submit_task("POST", f"/indexes/{index_uid}/documents", client.json(movies))
    try:
        report(client.wait_for_task(handle))
    except PollTimeoutError as exc:
        print(f"→ still {exc.last_status} after {exc.elapsed:.1f}s, giving up")
        raise

    log_section("Step 3: Read Back")
    context = CallContext(captured=[])
    page = client.execute(
        "GET",
        f"/indexes/{index_uid}/documents",
        lambda request: request.param("limit", "10").param("fields", "id").param("fields", "title"),
        decode_into=dict,
        context=context,
    )
    pretty_rows(page.get("results", []))
    print(f"→ filter saw {context['captured']}")

    log_section("Step 4: Provoke A Failed Task")
    handle = client.submit_task("POST", f"/indexes/{index_uid}/documents", client.json([{"title": "no id"}]))
    report(client.wait_for_task(handle))

    log_section("Step 5: Clean Up")
    try:
        report(client.wait_for_task(client.submit_task("DELETE", f"/indexes/{index_uid}")))
    except HttpFailureError as exc:
        print(f"→ delete failed: {exc}")
    client.close()


if __name__ == "__main__":
    main()
