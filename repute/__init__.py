"""
Repute — Community Reputation & Engagement-Integrity Engine
============================================================
Turns raw community actions (messages, raid engagements, help and feedback)
into a decayed, weighted reputation signal, derives a behavioural profile
per member, and scores claimed engagements for quality, relevance, spam,
consistency and fraud before they earn points.

Package layout::

    repute/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Badges, time & text helpers
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # ORM models (5 tables)
    │   └── seed.py        # Default scoring settings
    ├── engine/
    │   ├── cache.py       # In-memory scoring policy cache
    │   ├── interactions.py # InteractionRecord + payload normalization
    │   ├── weight.py      # Interaction weight pipeline
    │   ├── profile.py     # Personality profile derivation
    │   ├── memory.py      # Per-user memory buckets + profile cache
    │   ├── evaluation.py  # EvaluationResult + evaluator composition
    │   ├── quality.py     # Engagement quality evaluator
    │   ├── relevance.py   # Content relevance evaluator
    │   └── anti_gaming.py # Spam, consistency & fraud evaluators
    └── services/
        ├── interaction_service.py   # Interaction persistence & reads
        ├── profile_service.py       # Profile upsert / load
        ├── leaderboard_service.py   # Standing store + ranks
        ├── consolidation_service.py # Archive-then-delete job
        ├── scheduler.py             # Wall-clock & virtual schedulers
        ├── capabilities.py          # Capability protocols + registry
        └── memory_service.py        # CommunityMemoryService facade
"""

__version__ = "0.1.0"
