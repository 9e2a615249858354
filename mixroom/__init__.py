"""Mixroom: access control, client portal and approval core for release collaboration."""
