"""
connectors — Microsoft OAuth integration.

Handles:
  • OAuth2 auth-URL generation and code → token exchange
  • Per-user token storage with Fernet encryption at rest
  • Refresh-token rotation with retry and rate limiting
  • Connection status / disconnect
"""
