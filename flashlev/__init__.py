"""Leveraged flash-loan execution engine.

This package contains the building blocks of one leveraged operation:

- fees: protocol fee and execution-cost estimation
- risk: pre-flight limit and affordability gate
- execution: loan initiation, the callback stage machine, compensation,
  scope locks, call guards and paper collaborators
- audit: structured audit trail of decisions and aborts
- storage: persistence of operation outcomes
- health: oracle freshness and scope lock status

Default wiring is paper mode: the in-memory collaborators in
`flashlev.execution.paper` stand in for the lending pool, router, oracle and
ledger.
"""
