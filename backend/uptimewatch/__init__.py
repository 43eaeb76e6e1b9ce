"""UptimeWatch - HTTP uptime monitoring engine."""
