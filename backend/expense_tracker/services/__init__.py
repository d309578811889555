# Services package init
"""
Expense Tracker Backend — Services Layer
=========================================

What:  Business logic between routes (HTTP) and the database (persistence).
How:   Services accept validated domain values, apply ownership and business
       rules, and return response schemas. One instance of each is built by
       `create_app()` and read from `app.state` by the route dependencies.

Service Inventory:
    - UserStore:           user persistence and bcrypt password hashing
    - TokenService:        JWT issue and verification
    - AuthGate:            bearer credential → CurrentUser (or 401)
    - AuthService:         register, login, profile read and update
    - ExpenseLedger:       owner-scoped expense persistence and aggregates
    - ExpenseService:      expense validation, pagination, receipt lifecycle
    - AssetStore (abstract): image host interface
    - CloudinaryAssetStore: AssetStore backed by Cloudinary, with retries
    - UploadService:       image validation, temp staging, upload and discard
"""
