"""
Rules package.

Defines the rule contracts, the built-in rules and the machinery that turns
an observer's raw configuration into a filtered object list.

Modules of interest:
- models: RuleConfig (parameters vs. engine-owned state) and RuleApplicationUnit.
- base: Stateless and stateful rule contracts.
- allow_list, time_window, budget: The built-in rules.
- factory: Rule registry and config-to-rule materialisation.
- engine: Hybrid query + in-memory pipeline with state persistence.

Rules are singletons; per-observer data only ever lives in RuleConfig
values and the observer's persisted configuration.
"""
