"""Test suite for open-crm."""
