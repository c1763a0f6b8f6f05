"""External processes: command runner, supervisord, PostgreSQL setup."""
