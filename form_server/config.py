"""
Form server configuration. Provider credentials come from env; nothing secret lives in this file.
"""
import os

from form_server.errors import ConfigurationError

# OAuth client registered with Airtable (confidential client: id + secret)
CLIENT_ID = os.environ.get("AIRTABLE_CLIENT_ID", "")
CLIENT_SECRET = os.environ.get("AIRTABLE_CLIENT_SECRET", "")

# Callback URL Airtable redirects to after consent; must match the registered one exactly
REDIRECT_URI = os.environ.get("OAUTH_REDIRECT_URI", "")

# Scopes: read/write records, read base schema, read the user's email for the principal profile
DEFAULT_SCOPE = os.environ.get(
    "OAUTH_SCOPE",
    "data.records:read data.records:write schema.bases:read user.email:read",
)

# Front end; receives ?principalId=... after a successful login
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://127.0.0.1:5173").rstrip("/")

AUTHORIZE_URL = os.environ.get("AIRTABLE_AUTHORIZE_URL", "https://airtable.com/oauth2/v1/authorize")
TOKEN_URL = os.environ.get("AIRTABLE_TOKEN_URL", "https://airtable.com/oauth2/v1/token")
API_URL = os.environ.get("AIRTABLE_API_URL", "https://api.airtable.com/v0").rstrip("/")

DATABASE_URL = os.environ.get("FORMS_DATABASE_URL", "sqlite:///./form_server.db")

# Pending login lifetime (seconds); the user has this long to finish consent at Airtable
FLOW_TTL_SECONDS = int(os.environ.get("FLOW_TTL_SECONDS", "600"))

# Bound on every upstream round trip (token endpoint and data API)
UPSTREAM_TIMEOUT_SECONDS = float(os.environ.get("UPSTREAM_TIMEOUT_SECONDS", "10"))

# Refresh ahead of expiry when the provider told us the access token lifetime
TOKEN_EXPIRY_BUFFER_SECONDS = int(os.environ.get("TOKEN_EXPIRY_BUFFER_SECONDS", "60"))


def missing_provider_settings() -> list[str]:
    """Names of required provider settings that are unset or blank."""
    required = {
        "AIRTABLE_CLIENT_ID": CLIENT_ID,
        "AIRTABLE_CLIENT_SECRET": CLIENT_SECRET,
        "OAUTH_REDIRECT_URI": REDIRECT_URI,
    }
    return [name for name, value in required.items() if not value.strip()]


def require_provider_settings() -> None:
    missing = missing_provider_settings()
    if missing:
        raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")
