"""Adapters connecting the CRM core to the outside world."""
