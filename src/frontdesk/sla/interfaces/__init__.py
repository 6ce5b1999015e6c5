"""
SLA Interfaces Layer
=====================

Interface adapters (controllers) for the SLA engine.

Contains:
- Controllers: FastAPI route handlers for tickets, policies and jobs
"""

from frontdesk.sla.interfaces.controllers import jobs_router, sla_router

__all__ = ["sla_router", "jobs_router"]
