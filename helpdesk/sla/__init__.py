"""
SLA Module
==========

SLA clock engine.

Bounded context for:
- Selecting the SLA policy that applies to a ticket
- Running, pausing and closing the ticket's SLA clock
- Recording first response and resolution times in business minutes
- Sweeping running clocks for breaches
"""
