"""Client for the Penguin Statistics drop-rate API.

Submodules are imported on demand. Importing one attaches a stream handler to
the ``penguin_stats`` logger (see ``utils.get_logger``); that logger does not
propagate to the root logger.
"""

__all__: list[str] = []
