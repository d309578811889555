# Routes package init
"""
Expense Tracker Backend — API Routes Package
=============================================

Route Inventory:
    - health.py:    GET  /                     (service banner)
                    GET  /api/health           (database probe)
    - auth.py:      POST /api/auth/register
                    POST /api/auth/login
                    GET  /api/auth/profile
                    PUT  /api/auth/profile
    - expenses.py:  POST/GET /api/expenses
                    GET  /api/expenses/stats
                    GET/PUT/DELETE /api/expenses/{id}

Routes stay thin: parse the request, call a service, wrap the result in the
`{success, message, data}` envelope. Business rules live in services.
"""
