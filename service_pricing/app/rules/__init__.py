"""
Pricing rules package.

Defines the fact base, condition tree, event variants and the cascading
engine used by the Pricing Service. Every satisfied block fires in
priority order and each price change is recorded as an audit step.

Modules of interest:
- facts: Immutable fact base and operand resolution.
- conditions: all/any/leaf condition tree with short-circuit evaluation.
- events: Event variants with typed params and their application.
- parser: Stored block/strategy rows to typed rules.
- engine: Ordering, cascading application and result assembly.
"""
