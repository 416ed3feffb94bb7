"""Utility modules for the Web API client."""
