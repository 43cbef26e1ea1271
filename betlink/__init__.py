"""Affiliate postback ingestion and commission engine for betting houses."""
