"""
PROSPERA.AI – E-mail queue scheduler Lambda.

Triggered hourly by **EventBridge**, this function calls the backend's
``/process-email-queue`` endpoint so pending alert e-mails go out and daily /
weekly digests are built at each user's preferred hour.

Its core responsibilities are:

* Read the backend base URL from `APP_URL` and the shared key from
  `CRON_JOB_KEY`
* Normalise the URL (accept it with or without a protocol prefix)
* POST an empty JSON body with the ``x-admin-key`` header
* Return a structured response for CloudWatch / Lambda logs

Uses only the Python standard library so the deployment package stays a
single file.
"""

from __future__ import annotations

import json
import os
import urllib.error
import urllib.request
from typing import Any, Dict


# ============================================================
# Helper Functions
# ============================================================


def _build_queue_url(app_url: str) -> str:
    """Construct the queue endpoint URL from the configured base URL.

    Examples
    --------
    >>> _build_queue_url("https://api.prospera.ai/")
    'https://api.prospera.ai/process-email-queue'
    >>> _build_queue_url("api.prospera.ai")
    'https://api.prospera.ai/process-email-queue'
    """
    app_url = app_url.strip().rstrip("/")
    if not app_url.startswith(("https://", "http://")):
        app_url = f"https://{app_url}"
    return f"{app_url}/process-email-queue"


def _invoke_queue_endpoint(url: str, admin_key: str, timeout_seconds: int = 120) -> Dict[str, Any]:
    request = urllib.request.Request(
        url,
        data=json.dumps({}).encode("utf-8"),
        method="POST",
        headers={"Content-Type": "application/json", "x-admin-key": admin_key},
    )

    with urllib.request.urlopen(request, timeout=timeout_seconds) as response:
        raw_body = response.read().decode("utf-8")

    print(f"📡 Queue endpoint responded with: {raw_body}")

    try:
        parsed = json.loads(raw_body)
    except json.JSONDecodeError:
        parsed = {"raw": raw_body}

    return {"url": url, "response": parsed}


# ============================================================
# Lambda Entry Point
# ============================================================


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """AWS Lambda handler that triggers one pass of the e-mail queue.

    Raises
    ------
    ValueError
        If `APP_URL` or `CRON_JOB_KEY` is not set.
    """
    print("⏰ E-mail queue scheduler triggered via EventBridge")
    print(f"Incoming event: {json.dumps(event)}")

    app_url = os.environ.get("APP_URL")
    if not app_url:
        raise ValueError("APP_URL environment variable not set")

    admin_key = os.environ.get("CRON_JOB_KEY")
    if not admin_key:
        raise ValueError("CRON_JOB_KEY environment variable not set")

    queue_url = _build_queue_url(app_url)
    print(f"🔗 Target queue URL: {queue_url}")

    try:
        result = _invoke_queue_endpoint(queue_url, admin_key)
    except (urllib.error.URLError, TimeoutError) as exc:
        print(f"❌ Error processing e-mail queue: {exc}")
        return {
            "statusCode": 500,
            "body": json.dumps(
                {
                    "error": str(exc),
                    "message": "Failed to trigger e-mail queue processing",
                }
            ),
        }

    print("✅ E-mail queue processed")
    return {
        "statusCode": 200,
        "body": json.dumps(
            {
                "message": "E-mail queue processed",
                "details": result,
            }
        ),
    }
