"""
Observer Rules service package.

Read-only observers see a filtered view of a map's geo-objects. The
filter is a per-observer JSON configuration of composable rules. This
package provides:

- app.rules: Rule contracts, concrete rules, the rule factory and the
  orchestrating engine.
- app.validation: Structural and JSON-schema validation of raw rule
  configurations.
- app.persistence: PostgreSQL collaborators (geo-object queries and
  transactional observer writes).
- app.main: Service wiring; app.cli: command line entry point.

Guidelines:
- Rules are singletons built once at startup; they own no observer data.
- A misconfigured observer falls back to the default object set; only a
  failed state write is allowed to reach the caller.
"""
