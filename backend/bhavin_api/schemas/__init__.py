# Schemas package init
"""Pydantic models for the JSON bodies the pipeline returns."""
