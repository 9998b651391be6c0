"""Autocontrol: multi-tenant sanitary self-control records API."""
