"""Background and cron jobs."""
