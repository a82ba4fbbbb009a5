"""Recruiting wants taxonomy: what pros look for and what brokerages provide.

Both sides are free text in signup forms, so each canonical want carries the
phrasings seen in practice.
"""

WANTS_TAXONOMY = [
    {
        "canonical": "Leads",
        "synonyms": ["leads", "lead generation", "lead gen", "more leads", "buyer leads", "seller leads", "referrals"],
        "category": "Business",
    },
    {
        "canonical": "Higher Split",
        "synonyms": ["higher split", "better split", "commission split", "split", "better commission", "100% commission"],
        "category": "Compensation",
    },
    {
        "canonical": "Low Fees",
        "synonyms": ["low fees", "lower fees", "no desk fees", "low desk fees", "no franchise fee", "low cap"],
        "category": "Compensation",
    },
    {
        "canonical": "Training",
        "synonyms": ["training", "coaching", "mentorship", "mentoring", "education"],
        "category": "Growth",
    },
    {
        "canonical": "Marketing",
        "synonyms": ["marketing", "marketing support", "branding", "social media", "listing marketing"],
        "category": "Support",
    },
    {
        "canonical": "Technology",
        "synonyms": ["technology", "tech", "crm", "tools", "tech stack", "software"],
        "category": "Support",
    },
    {
        "canonical": "Admin Support",
        "synonyms": ["admin support", "transaction coordinator", "tc", "assistant", "back office"],
        "category": "Support",
    },
    {
        "canonical": "Culture",
        "synonyms": ["culture", "team culture", "community", "collaboration", "team environment"],
        "category": "Culture",
    },
    {
        "canonical": "Flexibility",
        "synonyms": ["flexibility", "flexible schedule", "work from home", "remote", "independence"],
        "category": "Culture",
    },
    {
        "canonical": "Revenue Share",
        "synonyms": ["revenue share", "rev share", "profit sharing", "passive income"],
        "category": "Compensation",
    },
    {
        "canonical": "Equity",
        "synonyms": ["equity", "stock", "ownership", "stock awards"],
        "category": "Compensation",
    },
    {
        "canonical": "Leadership Path",
        "synonyms": ["leadership", "leadership opportunity", "team lead", "career growth", "growth path"],
        "category": "Growth",
    },
    {
        "canonical": "Luxury Market",
        "synonyms": ["luxury", "luxury homes", "high end", "luxury market"],
        "category": "Specialization",
    },
    {
        "canonical": "Loan Products",
        "synonyms": ["loan products", "product variety", "non-qm", "jumbo", "fha", "va loans", "pricing"],
        "category": "Mortgage",
    },
    {
        "canonical": "Fast Closings",
        "synonyms": ["fast closings", "quick close", "on time closing", "processing support", "fast underwriting"],
        "category": "Mortgage",
    },
]

TAXONOMY_VERSION = "wants-v1"
