"""EventDesk backend application package."""
