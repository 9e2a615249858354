"""Persistence-backed operations behind the API routes."""
