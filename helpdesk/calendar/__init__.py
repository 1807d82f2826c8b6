"""
Business Calendar Module
========================

Business calendars and the business-time calculator.

Bounded context for:
- Weekly business hours in an IANA timezone, with holidays
- Counting business minutes between two instants
- Resolving and caching the calendar used by the SLA clock
"""
