"""Data quality assessment engine.

Per-table measurement of six quality metrics (completeness, accuracy,
consistency, validity, uniqueness, timeliness), issue detection,
remediation recommendations, catalog aggregation and derived reports.

Deterministic -- no LLM calls.
"""
