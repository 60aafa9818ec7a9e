"""
Event Discovery and Reconciliation

Links tournaments from the listing source to the result provider and keeps
their bracket data in sync.

Key components:
- Adapters: Listing source boundary
- Matchers: Identity matching between the two sources
- Bracket sync: Pulls and persists bracket/bout/placement trees
- Orchestrator: Runs discovery, rematch and manual approval flows
"""
