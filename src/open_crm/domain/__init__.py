"""
Domain Layer
============

CRM records and the pure services operating on them.
No infrastructure dependencies.
"""
