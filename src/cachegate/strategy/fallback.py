"""Synthetic responses for requests neither the cache nor the network can serve.

HTML navigations get a self-contained offline page (status 200) with a
retry button and a link back to the application root; every other request
gets a JSON 503 payload with ``offline: true``.
"""

from __future__ import annotations

import json

import httpx

from cachegate.models import RequestDescriptor, format_timestamp

OFFLINE_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Offline</title>
  <style>
    body {
      font-family: system-ui, sans-serif;
      display: flex;
      justify-content: center;
      align-items: center;
      min-height: 100vh;
      margin: 0;
      padding: 20px;
      box-sizing: border-box;
      background: #1f2937;
      color: #f9fafb;
      text-align: center;
    }
    .container { max-width: 480px; }
    h1 { font-size: 2em; margin-bottom: 0.5em; }
    p { line-height: 1.6; }
    button {
      background: #ef4444;
      color: white;
      border: none;
      padding: 12px 28px;
      border-radius: 24px;
      font-size: 1em;
      cursor: pointer;
      margin: 8px;
    }
  </style>
</head>
<body>
  <div class="container">
    <h1>You are offline</h1>
    <p>The requested page is not available right now and no cached copy exists.</p>
    <p>Cached parts of the application keep working; fresh data will load once
       the connection is back.</p>
    <button onclick="window.location.reload()">Retry</button>
    <button onclick="window.location.href='/'">Home</button>
  </div>
  <script>
    window.addEventListener('online', () => window.location.reload());
  </script>
</body>
</html>
"""


def build_fallback_response(descriptor: RequestDescriptor, now: float) -> httpx.Response:
    """Build the offline response for *descriptor*.

    Args:
        descriptor: The request that could not be served.
        now: Current POSIX time, reported in the JSON payload.

    Returns:
        The offline HTML page (200) if the request accepts ``text/html``,
        otherwise a JSON error payload (503).
    """
    request = httpx.Request(descriptor.method, descriptor.url)
    if descriptor.accepts_html:
        return httpx.Response(
            status_code=200,
            headers={"content-type": "text/html; charset=utf-8"},
            content=OFFLINE_PAGE.encode("utf-8"),
            request=request,
        )

    payload = {
        "error": "Resource unavailable offline",
        "message": "This resource is not available while offline.",
        "offline": True,
        "timestamp": format_timestamp(now),
    }
    return httpx.Response(
        status_code=503,
        headers={"content-type": "application/json"},
        content=json.dumps(payload).encode("utf-8"),
        request=request,
    )
