"""
Pytest configuration for context_api. Use in-memory SQLite so tests don't touch the filesystem.
"""
import os

# In-memory SQLite; database.py uses StaticPool so all connections share the same DB
os.environ["CONTEXT_DATABASE_URL"] = "sqlite:///:memory:"
for _name in ("OAUTH_ISSUER", "OAUTH_JWKS_URI", "CONTEXT_API_AUDIENCE", "CONTEXT_LAUNCH_TTL_SECONDS"):
    os.environ.pop(_name, None)
