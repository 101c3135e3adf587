"""Core building blocks: API client, uploads, cleanup."""
