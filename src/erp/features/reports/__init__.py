"""Reporting views for the ERP

This package assembles report-ready aggregates from the in-memory
collections held by the repositories: a unified transaction feed that
merges financial transactions, purchase orders, sales orders and stock
adjustments, and a sales report with breakdowns by sales channel, top
items and sales over time.

The store exposes no joined views, so everything here is computed from
already loaded entities. The service functions are pure; the router only
collects the current repository snapshots and hands them over."""
