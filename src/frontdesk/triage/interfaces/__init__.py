"""
Triage Interfaces Layer
=======================

FastAPI route handlers for the triage module.
"""

from frontdesk.triage.interfaces.controllers import triage_router

__all__ = ["triage_router"]
