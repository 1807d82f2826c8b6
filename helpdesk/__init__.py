"""
Helpdesk SLA Engine
===================

Business-time and SLA clock engine for a helpdesk ticketing platform.

Bounded contexts:
- calendar: business calendars, holidays and the business-time calculator
- sla: policy selection and the per-ticket SLA clock
"""

__version__ = "1.0.0"
