"""
Application settings read from the environment.
"""
import os


#####
# Logging
#####
LOG_LEVEL = os.environ.get("LOG_LEVEL", "info")
LOG_FORMAT = os.environ.get(
    "LOG_FORMAT",
    "%(asctime)s %(levelname)-8s %(name)s %(filename)s:%(lineno)d - %(message)s",
)

#####
# Selector persistence
#####
# Directory for the JSON file store; empty means an in-memory store
SELECTOR_STORE_DIR = os.environ.get("SELECTOR_STORE_DIR", "")
SELECTOR_SEEDS_DIR = os.environ.get("SELECTOR_SEEDS_DIR", "")
SEED_SELECTOR_SETS = os.environ.get("SEED_SELECTOR_SETS", "true").lower() == "true"

#####
# Content fetching
#####
CONTENT_FETCH_TIMEOUT = float(os.environ.get("CONTENT_FETCH_TIMEOUT", "30"))
CONTENT_FETCH_MAX_RETRIES = int(os.environ.get("CONTENT_FETCH_MAX_RETRIES", "3"))
CONTENT_FETCH_USER_AGENT = os.environ.get(
    "CONTENT_FETCH_USER_AGENT", "PaperScout/0.1 (+selector-extraction)"
)

#####
# Tracing
#####
ENABLE_EXTRACTION_TRACING = (
    os.environ.get("ENABLE_EXTRACTION_TRACING", "false").lower() == "true"
)
OTEL_EXPORTER_OTLP_ENDPOINT = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")
OTEL_SERVICE_NAME = os.environ.get("OTEL_SERVICE_NAME", "PaperScoutExtraction")
OTEL_SERVICE_VERSION = os.environ.get("OTEL_SERVICE_VERSION", "0.1.0")
OTEL_ENVIRONMENT = os.environ.get("OTEL_ENVIRONMENT", "production")
