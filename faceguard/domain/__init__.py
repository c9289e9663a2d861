"""Domain layer: entities, value objects and capability interfaces."""
