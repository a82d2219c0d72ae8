"""HTTP API for the work-order payroll engine."""
