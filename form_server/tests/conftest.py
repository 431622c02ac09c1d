"""
Pytest configuration for form_server. In-memory SQLite and fake provider settings,
set before any form_server module reads them.
"""
import os

os.environ["FORMS_DATABASE_URL"] = "sqlite:///:memory:"
os.environ["AIRTABLE_CLIENT_ID"] = "test-client"
os.environ["AIRTABLE_CLIENT_SECRET"] = "test-secret"
os.environ["OAUTH_REDIRECT_URI"] = "http://127.0.0.1:8000/auth/callback"
os.environ["FRONTEND_URL"] = "http://127.0.0.1:5173"
os.environ["AIRTABLE_AUTHORIZE_URL"] = "https://airtable.test/oauth2/v1/authorize"
os.environ["AIRTABLE_TOKEN_URL"] = "https://airtable.test/oauth2/v1/token"
os.environ["AIRTABLE_API_URL"] = "https://api.airtable.test/v0"
