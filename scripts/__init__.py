"""Operator tooling for the inventory ledger."""
