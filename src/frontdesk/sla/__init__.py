"""
SLA Engine Module
=================

Bounded Context for support-ticket SLA tracking and escalation.

Responsibilities:
- Create one ticket per guest conversation, classified by keyword rules
- Compute response/resolution deadlines from hotel SLA policies
- Track the ticket lifecycle with an append-only audit trail
- Sweep unanswered tickets for breaches and escalation thresholds
- Fan breach/escalation alerts out to staff roles (in-app and Slack)
"""

__version__ = "1.0.0"
