"""
Helpdesk SLA Engine
===================

SLA compliance subsystem of the helpdesk: violation detection, escalation
routing, notifications and compliance reporting.

Bounded contexts:
- sla: SLA rules, violations, escalations, notifications, reports

Shared kernel:
- config: settings and domain constants
- core: exception hierarchy
- infrastructure: database engine and sessions
- shared: logging, HTTP middleware, time helpers
"""

__version__ = "1.0.0"
