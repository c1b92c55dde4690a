"""
Pricing Service package for the bundle pricing engine.

This package computes traveler-facing prices for connectivity bundles
by running ordered pricing blocks against a per-request fact base. It
provides:

- app.main: API surface for single and batch (streamed) pricing.
- app.rules: Fact base, conditions, events and the rule engine.
- app.strategies: Strategy storage, YAML loading and caching.
- app.catalog: Bundle lookup table and bundle selection.
- app.pricing: Fact-base builder, single pricer and batch coordinator.

Guidelines:
- A pricing run is pure: no I/O inside the engine.
- Keep evaluation deterministic and observable (metrics + logs).
"""
