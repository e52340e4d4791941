"""Service layer for business logic.

Services encapsulate all business logic, keeping routes thin and focused
on HTTP handling.

Layer hierarchy:
    Routes (HTTP) -> Services (Business Logic) -> Repositories (Database)

Services should:
- Contain the business rules (ownership, roles, redemption status)
- Orchestrate calls to repositories and external adapters
  (artifact store, notifier)
- Raise domain exceptions that routes map to HTTP errors

Services should NOT:
- Directly execute SQL queries (use repositories)
- Know about HTTP request/response details
- Return Pydantic schema objects (routes do the conversion)
"""
