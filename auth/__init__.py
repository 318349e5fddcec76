"""
auth — local identity for the connections service.

Provides:
  • Signed bearer session tokens
  • Password hashing (bcrypt)
  • Register / Login API routes
  • ``get_current_user_id`` FastAPI dependency
"""
