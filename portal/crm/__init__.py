"""CRM records and workflows. Each module owns one table family."""
