"""Workflow graph transformation package.

Subpackages:
- engine: Snapshot types, edge utilities, positioning and spacing, step
  analysis, transfer validation and execution, drag-to-branch composition

Modules:
- settings: Engine tunables read from the environment
- config: Server binding, CORS and log location
- logging_config: Named file + console loggers
"""
