"""Google sign-in with server-side sessions."""
