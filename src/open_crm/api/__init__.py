"""
API Layer
=========

FastAPI application exposing a CRM database over HTTP.
"""
