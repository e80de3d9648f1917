"""
Crontal RFQ — Procurement text to structured RFQ, refinement chat, quote negotiation

Packages:
    api/      Flask Blueprint routes and security middleware
    agents/   Pipeline steps (extract, normalize, clarify, negotiate)
    core/     Shared schema, stores, model client, errors, paths, secrets
"""
