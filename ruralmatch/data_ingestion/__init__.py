"""
Data ingestion package for the business matching service.

Responsibility:
- Read a raw export of business directory documents.
- Normalize it into the canonical business table.
- Persist the cleaned table locally for the candidate store.
"""
