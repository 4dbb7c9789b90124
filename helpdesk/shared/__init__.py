"""
Shared Kernel Module
====================

Generic infrastructure used by every bounded context: structured logging,
HTTP middleware and UTC time helpers.

DO NOT add SLA business logic to the shared kernel.
"""
