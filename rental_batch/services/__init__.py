"""Services behind the daily batch: persistence, audit log, processing and notifications."""
