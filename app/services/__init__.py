"""
Services module.

- core: external API clients (result provider)
- sync: discovery and reconciliation pipeline (matcher, bracket sync, orchestrator)
"""
