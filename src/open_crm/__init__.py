"""
open-crm
========

A small CRM (companies, contacts, apps, interactions) over interchangeable
storage backends: memory, JSON file, remote CRM API and CouchDB.
"""

__version__ = "0.1.0"
