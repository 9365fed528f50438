"""
Business matching and recommendation engine.

Responsibilities:
- Pull a bounded candidate pool from the business store.
- Score candidates on distance, category, availability and rating.
- Blend in oracle relevance scores and rank with explainable reasons.
- Degrade to attribute-only scoring when the oracle is unavailable.
"""
