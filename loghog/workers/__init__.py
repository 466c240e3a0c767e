# =============================================================================
# Workers Package — Celery Background Tasks
# =============================================================================
# Periodic housekeeping outside the request path:
#   - celery_app.py: Celery application configuration and beat schedule
#   - tasks.py: Task definitions (retention purge)
# =============================================================================
