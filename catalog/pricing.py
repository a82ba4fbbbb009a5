"""Default pricing packages, recruit pricing tiers and SMS provider rows."""

PRICING_PACKAGES = [
    {"name": "Starter", "monthly_cost": 0.0, "leads_per_month": 5},
    {"name": "Growth", "monthly_cost": 499.0, "leads_per_month": 20},
    {"name": "Pro", "monthly_cost": 999.0, "leads_per_month": 50},
]

# price_modifier is dollars for add-ons and a fraction for time discounts
PRICING_CONFIGS = [
    {"config_type": "base", "tier_name": "Base", "price_modifier": 100.0},
    {"config_type": "motivation", "tier_name": "Warm", "min_value": 5, "max_value": 6, "price_modifier": 25.0},
    {"config_type": "motivation", "tier_name": "Hot", "min_value": 7, "max_value": 8, "price_modifier": 50.0},
    {"config_type": "motivation", "tier_name": "Ready Now", "min_value": 9, "max_value": 10, "price_modifier": 100.0},
    {"config_type": "transactions", "tier_name": "Producer", "min_value": 10, "max_value": 24, "price_modifier": 50.0},
    {"config_type": "transactions", "tier_name": "Top Producer", "min_value": 25, "max_value": 49, "price_modifier": 100.0},
    {"config_type": "transactions", "tier_name": "Elite", "min_value": 50, "max_value": None, "price_modifier": 200.0},
    {"config_type": "time_discount", "tier_name": "48 Hours", "min_value": 48, "price_modifier": 0.10},
    {"config_type": "time_discount", "tier_name": "1 Week", "min_value": 168, "price_modifier": 0.25},
    {"config_type": "time_discount", "tier_name": "30 Days", "min_value": 720, "price_modifier": 0.50},
]

SMS_PROVIDER_CONFIGS = [
    {"provider_type": "twilio_primary", "display_name": "Twilio (Primary)", "is_default": True, "priority": 1},
    {"provider_type": "twilio_backup", "display_name": "Twilio (Backup)", "priority": 2},
    {"provider_type": "messagebird", "display_name": "MessageBird", "priority": 3},
]
