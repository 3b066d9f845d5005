"""Browser session management: launch, page registry, action queue and events."""
