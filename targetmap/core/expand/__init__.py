"""Deterministic graph expansion.

map (static branching), combine (aggregation) and the raw row-wise
substitution primitive both are built on. Nothing here evaluates an
expression or touches the filesystem except the template library loader.
"""
