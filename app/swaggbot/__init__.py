"""
Swaggbot API Execution Service.

This service turns generated curl commands and multi-step workflow plans
into safe, sandboxed HTTP calls against a registered third-party API.
"""

__version__ = "0.4.0"
