"""Employee records: profiles, reporting lines, dependency checks."""
