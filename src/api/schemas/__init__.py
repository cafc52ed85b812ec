"""Pydantic models for API response bodies."""
