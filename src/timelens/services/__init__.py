"""Service layer — the coordination components, returning CommandResult.

Services may import from domain, infrastructure, and plugins.
They must never import from the client composition root.
"""
