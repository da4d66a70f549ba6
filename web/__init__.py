"""JSON API for autoscale."""
