"""Seed data: default field definitions, wants taxonomy, pricing tiers."""
