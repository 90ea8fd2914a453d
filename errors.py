class InvalidInput(ValueError):
    """A value breaks a documented precondition (negative amount, fire_age <= current_age, ...).

    Raised immediately and never retried. Degenerate comparisons (two zero values,
    two names that normalise to nothing) are not errors; the scorers handle them.
    """
