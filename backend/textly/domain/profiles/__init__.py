"""User profile projections, avatar normalization and the profile resolver."""
