"""
Storage collaborators for the rule engine.

- query: Composable geo-object query (where/and_where/set_parameter/execute).
- postgres: asyncpg pool, geo-object and observer repositories, and the
  refresh-then-write transaction used to persist rule state.
"""
