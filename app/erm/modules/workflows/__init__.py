"""Approval workflows: routing, decisions, stats."""
