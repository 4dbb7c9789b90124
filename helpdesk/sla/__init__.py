"""
SLA Engine Module
=================

Bounded Context for Service Level Agreement violation detection and
escalation of helpdesk tickets.

Responsibilities:
- Store SLA rules per ticket priority and their escalation routing
- Detect response / resolution deadline breaches of open tickets
- Escalate open violations level by level to users or roles
- Record SLA notifications for the helpdesk to deliver
- Report SLA compliance over a time window
"""

__version__ = "1.0.0"
