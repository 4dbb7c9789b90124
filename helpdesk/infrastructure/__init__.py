"""
Infrastructure Layer
=====================

Technical concerns shared by every bounded context:
- Database engine, session lifecycle, declarative base
"""
