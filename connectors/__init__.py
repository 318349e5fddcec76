"""
connectors — OAuth connections to Gmail and Google Classroom.

Handles:
  • Consent-URL generation with signed, user-bound state
  • Callback handling (code → token exchange → credential upsert)
  • Per-user credential storage with Fernet encryption at rest
  • Transparent, single-flight token refresh
  • Authenticated, bounded fetches of messages and announcements
  • Disconnect (optionally revoking consent)

Provider differences live in ``connectors.providers``.
"""
