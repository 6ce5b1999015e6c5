"""
Shared Kernel Module
====================

This module contains shared infrastructure used across the bounded contexts
(SLA engine and keyword triage).

Architecture Pattern: Modular Monolith
- Each module (sla, triage) is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add business logic from SLA or Triage to shared kernel.
"""
