"""
Infrastructure Layer
====================

Configuration, logging, adapter factory and server wiring.
"""
