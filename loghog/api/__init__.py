# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines a FastAPI APIRouter (or middleware) for one concern:
#   - logs.py: Log submission, batch submission, query and record view
#   - admin.py: Applications, tokens and message templates (admin key)
#   - deps.py: Token resolution, rate limiting and service wiring
#   - access_log.py: One log line per request
# =============================================================================
