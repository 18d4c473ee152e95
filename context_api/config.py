"""
Context API configuration. Issuer and audience are public identifiers, not secrets.
"""
import os

# Authorization Server that issues our callers' client credentials tokens (JWKS + iss)
ISSUER = os.environ.get("OAUTH_ISSUER", "http://127.0.0.1:9000").rstrip("/")

# JWKS location; defaults to the issuer's well-known path
JWKS_URI = os.environ.get("OAUTH_JWKS_URI", f"{ISSUER}/.well-known/jwks.json")

# This API's audience: access tokens must include this in aud
API_AUDIENCE = os.environ.get("CONTEXT_API_AUDIENCE", "http://smart-context:8088")

# SQLite DB for development
DATABASE_URL = os.environ.get("CONTEXT_DATABASE_URL", "sqlite:///./context_api.db")

# Launch ids are single-session handles; keep them short-lived (seconds)
LAUNCH_TTL_SECONDS = int(os.environ.get("CONTEXT_LAUNCH_TTL_SECONDS", "300"))

# Scopes required by the context routes
SCOPE_READ = "context"
SCOPE_WRITE = "context.write"
