"""Tenant-scoped retrieval context engine.

Ingests a chatbot's knowledge sources (text, files, web pages, FAQ
pairs), chunks and embeds them, drops chunks that duplicate anything the
tenant already has, and answers similarity queries restricted to one
tenant's data.  See :func:`context_engine.main.build_engine` for wiring.
"""

__version__ = "0.1.0"
