"""
Shared Kernel Module
====================

This module contains shared infrastructure used across all bounded contexts
(Business Calendars and SLA).

Architecture Pattern: Modular Monolith
- Each module (calendar, sla) is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add business logic from Calendar or SLA to shared kernel.
"""
