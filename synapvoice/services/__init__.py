"""Service layer: registry, capture, voice protocols and the command controller."""
