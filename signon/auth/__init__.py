"""
Authentication helpers for the sign-on service.

Design goals:
- Google OAuth2 Authorization Code flow, no client-side tokens.
- Opaque session id in a signed HttpOnly cookie; session state lives in Postgres.
"""
