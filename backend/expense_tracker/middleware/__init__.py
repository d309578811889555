# Middleware package init
"""
Expense Tracker Backend — Middleware Package
=============================================

Middleware chain (outermost first):
    Request → [CORS] → [GZip] → [Request ID] → [Logging] → [Rate Limit] → Route Handler

    - Request ID runs before Logging so every access line carries the id
    - Rate Limit is innermost of the three so rejected attempts are still logged
    - Only the credential endpoints are rate limited
"""
