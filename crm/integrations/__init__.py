"""HTTP clients for third-party services (SMS, email, payments, enrichment, geocoding)."""
