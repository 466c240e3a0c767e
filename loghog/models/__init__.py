# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Defines request/response schemas for the API.
# These are SEPARATE from the database models (loghog/db/models.py).
#
# API schemas define what clients see; DB models define how data is stored.
# Keeping them apart means compressed bodies and token hashes can never be
# serialised to a client by accident.
# =============================================================================
