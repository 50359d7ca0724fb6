"""Pydantic models for applicants, addresses, patrons and card policies."""
