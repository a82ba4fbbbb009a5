"""Backend package: DB models, pipelines, integrations, APIs.

This package holds the recruiting CRM: pros and clients, bids, match
scoring, billing, SMS/email notifications and signup funnels.
"""
