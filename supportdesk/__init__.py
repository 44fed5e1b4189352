"""SupportDesk Agent - FAQ-grounded support answers with human escalation.

This package answers internal support questions by combining a small set of
deterministic agents:
- Intent: Classifies a question into a fixed set of support categories
- Retrieval: Ranks FAQ entries and past questions by lexical similarity
- Answer: Builds a templated answer from the best FAQ entry
- Judge: Decides whether the interaction must be handed to a human

The same pipeline is exposed by an MCP tool-provider process. The web API
reaches it through a protocol bridge and falls back to the embedded pipeline
whenever the provider is unavailable.
"""

__version__ = "0.1.0"
