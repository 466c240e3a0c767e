# =============================================================================
# Services Package — Business Logic
# =============================================================================
# Contains the core ingestion and retrieval logic, separated from API handlers:
#   - auth.py: Token generation, hashing and resolution to an application
#   - validator.py: Submission validation (required fields, levels, JSON body)
#   - extractor.py: Index fields from top-level values or the body
#   - codec.py: Lossless body compression (zlib over compact JSON)
#   - store.py: Pluggable log store protocol (PostgreSQL, in-memory)
#   - pipeline.py: authenticate → validate → extract → compress → persist
#   - query.py: Filtered, cursor-paginated queries and the record view
#   - templates.py: Message template rendering
#   - rate_limiter.py: Per-application sliding window in Redis
# =============================================================================
