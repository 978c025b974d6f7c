"""Query execution services: delegates, relation loading, aggregation, transactions."""
