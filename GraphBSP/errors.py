"""Error hierarchy for GraphBSP jobs."""


class GraphBSPError(Exception):
    """Base exception for graph job failures."""

    def __init__(self, message, superstep=None, vertex_id=None, context=None):
        details = []
        if superstep is not None:
            details.append(f"superstep={superstep}")
        if vertex_id is not None:
            details.append(f"vertex={vertex_id!r}")
        full_message = f"{message} ({', '.join(details)})" if details else message
        super().__init__(full_message)
        self.superstep = superstep
        self.vertex_id = vertex_id
        self.context = dict(context) if context else {}

    def log_message(self):
        if not self.context:
            return str(self)
        return f"{self}: {self.context}"


class ConfigError(GraphBSPError):
    """Job configuration is missing or invalid."""


class LoadError(GraphBSPError):
    """Malformed input record or invalid graph construction."""


class ComputeError(GraphBSPError):
    """A vertex program raised during compute or cleanup."""


class CombinerError(ComputeError):
    """A combiner raised while folding messages for a target vertex."""


class RoutingError(GraphBSPError):
    """A message was addressed to a vertex id that is not in the graph."""


class JobCancelledError(GraphBSPError):
    """The job was cancelled at a superstep barrier."""


__all__ = [
    "GraphBSPError",
    "ConfigError",
    "LoadError",
    "ComputeError",
    "CombinerError",
    "RoutingError",
    "JobCancelledError",
]
