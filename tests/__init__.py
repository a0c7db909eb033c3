"""
Pocket Organizer trigger test suite.

- test_periods.py: budget period windows
- test_budget_alerts.py: threshold evaluation, aggregation, deduplication, pipeline
- test_expiry_reminders.py: daily expiry scan and reminder keys
- test_notifications.py: FCM envelope and dispatcher
- test_auth.py: push credentials and trigger endpoint tokens
- test_router.py: HTTP endpoints and scheduled job wiring
- test_backup.py: device backup scheduling decisions

Run all tests:
    pytest tests/
"""
