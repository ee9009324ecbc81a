VERSION = "0.3.0"
VERSION_NAME = "ephemera"

DB_SCHEMA_VERSION = 1
