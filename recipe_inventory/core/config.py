import os

# Database Configuration
# Uses default credentials for local Docker Compose setup
DB_URL = os.getenv("DATABASE_URL", "postgres://user:password@db:5432/inventory_db")

# Application Metadata
PROJECT_NAME = "Recipe Inventory Engine"
VERSION = "1.0.0"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Stock Policy
# "clamp": a deduction larger than the stock consumes to zero (recorded as a discrepancy)
# "reject": a deduction that would go negative raises InsufficientStockError
NEGATIVE_STOCK_POLICY = os.getenv("NEGATIVE_STOCK_POLICY", "clamp")
# Match recipe lines to snapshots by name when no id match exists (legacy rows)
LEGACY_NAME_MATCHING = os.getenv("LEGACY_NAME_MATCHING", "true").lower() in ("1", "true", "yes")
LOCK_TIMEOUT_SECONDS = float(os.getenv("LOCK_TIMEOUT_SECONDS", 5))

# Outbox Poller Configuration
POLLING_INTERVAL = int(os.getenv("POLLING_INTERVAL", 1)) # Poller checks for new events every N seconds
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", 5)) # Max retries for an event
BATCH_SIZE = int(os.getenv("BATCH_SIZE", 50)) # How many events to fetch per poll
