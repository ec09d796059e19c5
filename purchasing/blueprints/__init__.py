"""JSON API blueprints (one package per aggregate)."""
