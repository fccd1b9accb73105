"""Internal constants shared across the library."""

USER_AGENT = "drivepipe/1"

# ------------------------------------------------------------------
# Document store collections
# ------------------------------------------------------------------

USERS = "users"
VEHICLES = "vehicles"
DRIVES = "drives"
DATAPOINTS = "datapoints"
ROUTES = "routes"
MAINTENANCE = "maintenance"
AI_JOBS = "aiJobs"
DASHBOARDS = "dashboards"

# ------------------------------------------------------------------
# Route matching
# ------------------------------------------------------------------

GEOHASH_PRECISION = 5
ROUTE_NAME_PREFIX = "Route #"

# ------------------------------------------------------------------
# Job progress checkpoints (coarse, for polling clients)
# ------------------------------------------------------------------

PROGRESS_STARTED = 0.1
PROGRESS_DASHBOARD_STARTED = 0.2
PROGRESS_ENTITIES_RESOLVED = 0.3
PROGRESS_PROMPT_READY = 0.5
PROGRESS_EXPORT_ROWS_READ = 0.6
PROGRESS_EXPORT_RENDERED = 0.8
PROGRESS_DONE = 1.0

# ------------------------------------------------------------------
# Columnar files
# ------------------------------------------------------------------

COLUMNAR_SCHEMA_VERSION = "1"
SIGNED_URL_TTL_SECONDS = 7 * 24 * 3600
