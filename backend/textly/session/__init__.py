"""Client session: identity, injected collaborators and the chat orchestrator."""
