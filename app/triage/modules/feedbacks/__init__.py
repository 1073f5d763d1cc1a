"""
Feedback module.

- Public form: anyone may submit an item (single-use CSRF token required)
- Admin views: list, detail and status changes behind a login session
- Status changes are recorded to the append-only audit trail
"""
