"""
Triage Module
=============

Bounded Context for deterministic ticket classification.

Responsibilities:
- Map a conversation's subject and recent messages to a category,
  department and priority using an ordered keyword rule table
- Expose classification over HTTP for the messaging UI
"""

__version__ = "1.0.0"
