"""
HTML page returned to the OAuth popup after the provider redirect.

It posts ``{type: "oauth-success", provider}`` (or ``oauth-error`` with the
reason) to the opener window and closes itself.  Clients that are not a
browser popup ignore the page and poll ``GET /oauth/connections`` instead.
"""

from __future__ import annotations

import html
import json

from connectors.schemas import CallbackOutcome


def callback_message(outcome: CallbackOutcome) -> dict:
    """The postMessage payload for an outcome."""
    if outcome.success:
        return {"type": "oauth-success", "provider": outcome.provider}
    return {
        "type": "oauth-error",
        "provider": outcome.provider,
        "error": outcome.message,
        "code": outcome.code,
    }


def render_callback_page(outcome: CallbackOutcome) -> str:
    status_emoji = "✅" if outcome.success else "❌"
    status_text = "Connected!" if outcome.success else "Connection failed"
    color = "#00d992" if outcome.success else "#ef4444"
    # "</" is escaped so the payload cannot terminate the script element.
    payload = json.dumps(callback_message(outcome)).replace("</", "<\\/")
    message = html.escape(outcome.message)
    title = html.escape(f"{outcome.provider or 'OAuth'} — {status_text}")

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>StudyDesk — {title}</title>
    <style>
        body {{
            font-family: 'Inter', system-ui, sans-serif;
            background: #0b0d11; color: #e4e7ee;
            display: flex; align-items: center; justify-content: center;
            height: 100vh; margin: 0;
        }}
        .card {{
            text-align: center; padding: 40px;
            background: #12151b; border: 1px solid #1f2330;
            border-radius: 12px; max-width: 400px;
        }}
        .emoji {{ font-size: 3rem; }}
        h2 {{ color: {color}; margin: 16px 0 8px; }}
        p {{ color: #a0a6b8; font-size: 0.85rem; }}
    </style>
</head>
<body>
    <div class="card">
        <div class="emoji">{status_emoji}</div>
        <h2>{status_text}</h2>
        <p>{message}</p>
        <p>You can close this window.</p>
    </div>
    <script>
        if (window.opener) {{
            window.opener.postMessage({payload}, '*');
        }}
        window.close();
    </script>
</body>
</html>"""
