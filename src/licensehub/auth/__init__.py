"""Authentication for admins (JWT) and client software (API keys)."""
