class ConfigurationError(ValueError):
    """Invalid parameters or input images, raised before any graph work starts."""


class SchedulerInvariantError(RuntimeError):
    """
    The scheduler's bookkeeping is inconsistent (a vertex visited twice, vertex
    counts that do not add up, ...). The run cannot continue.
    """
