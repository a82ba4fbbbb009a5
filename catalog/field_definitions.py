"""Default field definitions for the weighted match scorer.

Weights are relative; only fields with a positive weight are scored.
"""

FIELD_DEFINITIONS = [
    # Geography
    {"field_name": "zip_codes", "display_name": "Zip Codes", "field_type": "array", "matching_weight": 25},
    {"field_name": "cities", "display_name": "Cities", "field_type": "array", "matching_weight": 20},
    {"field_name": "states", "display_name": "States", "field_type": "array", "matching_weight": 10},
    {"field_name": "counties", "display_name": "Counties", "field_type": "array", "matching_weight": 5},
    # Performance
    {"field_name": "experience", "display_name": "Years of Experience", "field_type": "number", "matching_weight": 10},
    {"field_name": "transactions", "display_name": "Transactions", "field_type": "number", "matching_weight": 10},
    {"field_name": "total_volume_12mo", "display_name": "12-Month Volume", "field_type": "currency", "matching_weight": 5},
    # Fit
    {"field_name": "wants", "display_name": "Wants", "field_type": "textarea", "matching_weight": 10, "use_ai_matching": True},
    {"field_name": "needs", "display_name": "Needs", "field_type": "textarea", "matching_weight": 5, "use_ai_matching": True},
    {"field_name": "brokerage", "display_name": "Brokerage", "field_type": "text", "matching_weight": 0},
    {"field_name": "license_type", "display_name": "License Type", "field_type": "select", "matching_weight": 0},
]
