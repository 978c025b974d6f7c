"""
Query building blocks: schema registry, filter DSL, ordering, pagination
and projections. Nothing in here talks to the database.
"""
