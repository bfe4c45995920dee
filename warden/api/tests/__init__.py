"""
WARDEN API Test Suite

HTTP-level tests against the FastAPI app with an in-memory database.

Test Files:
- conftest.py: Shared fixtures (database, app, role records, tokens)
- test_audit_routes.py: Audit log retrieval, statistics and export
- test_admin_routes.py: Role administration and its audit trail
- test_session_routes.py: Sign-in / sign-out auditing, identity, health

Run Commands:
    # All tests
    pytest warden/api/tests -v

    # With coverage
    pytest warden/api/tests --cov=warden.api --cov-report=html
"""
