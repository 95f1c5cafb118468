"""Taskboard: identity provisioning and task aggregation over Supabase."""

__version__ = "0.1.0"
