"""
Rental Modules.

Thin orchestration layers over the rental kernel and engines:

- rentals: short-term rentals billed as a ledger of pricing segments
  (extension, vehicle change, repricing), lifecycle and settlement
- long_term: lease contracts billed per payment cycle, with pro-rata,
  payment allocation and overdue classification

Each module contains domain models (frozen dataclasses), pure logic, ORM
persistence models and a service that owns the database shell.
"""
