"""WARDEN API package."""
