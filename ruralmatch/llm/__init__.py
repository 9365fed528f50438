"""
Relevance oracle integration layer.

Responsibilities:
- Manage Groq API configuration and credentials.
- Build one prompt per batch from the user's intent and compact candidate descriptions.
- Call Groq under a timeout and a bounded retry policy.
- Parse relevance scores and report failed batches without failing the request.
"""
