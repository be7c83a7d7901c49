"""Core services: claims, reference numbers, live events and projections."""
