"""db/ -- Persistence gateway, table definitions and default data."""
