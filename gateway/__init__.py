"""Outbound integration gateway: one FastAPI service in front of CRM, commerce, vector and LLM APIs."""

__version__ = "1.0.0"
