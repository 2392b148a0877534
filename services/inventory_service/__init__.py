"""Inventory ledger, reservations, alerts and reporting for storefront products."""
