"""JSON blueprints. Each package exposes its Blueprint object for the app factory."""
