"""
Vertex program contract and the per-vertex contexts handed to it.

A vertex program is anything with a `compute(ctx, messages)` capability and an
optional `cleanup(ctx)` capability. Programs are normalized to a dict:

    program = create_vertex_program(compute, cleanup=None, name="CC")

Contexts are dicts of closures, one per vertex per invocation:

    def compute(ctx, messages):
        if ctx["get_superstep"]() == 0:
            ctx["set_value"](ctx["get_id"]())
        ctx["send_message_to_neighbors"](ctx["get_value"]())
        ctx["vote_to_halt"]()

Writes made through a compute context are staged; the coordinator commits
them at the barrier only if the whole superstep succeeds.
"""

import copy

from .errors import ComputeError, ConfigError


# =============================================================================
# PROGRAM CONSTRUCTORS
# =============================================================================

def create_vertex_program(compute, cleanup=None, name=None):
    """
    Build a vertex program from plain functions.

    Args:
        compute: Callable (ctx, messages) -> None
        cleanup: Optional callable (ctx) -> None, run once per vertex at job end
        name: Label used in debug output

    Returns:
        Vertex program dict
    """
    if not callable(compute):
        raise ConfigError("Vertex program requires a callable compute function")
    if cleanup is not None and not callable(cleanup):
        raise ConfigError("Vertex program cleanup must be callable")

    return {
        "compute": compute,
        "cleanup": cleanup,
        "type": name or getattr(compute, "__name__", "VertexProgram")
    }


def as_vertex_program(obj):
    """
    Normalize a user-supplied vertex program.

    Accepts a program dict, a class exposing compute/cleanup (instantiated with
    no arguments), or an object exposing compute/cleanup.
    """
    if isinstance(obj, dict):
        if "compute" not in obj:
            raise ConfigError("Vertex program dict requires a 'compute' function")
        return create_vertex_program(obj["compute"], obj.get("cleanup"), obj.get("type"))
    if isinstance(obj, type):
        if not hasattr(obj, "compute"):
            raise ConfigError(f"Vertex program class {obj.__name__} has no compute method")
        instance = obj()
        return create_vertex_program(instance.compute, getattr(instance, "cleanup", None), obj.__name__)
    if hasattr(obj, "compute"):
        return create_vertex_program(obj.compute, getattr(obj, "cleanup", None), type(obj).__name__)
    raise ConfigError(f"Not a vertex program: {obj!r}")


# =============================================================================
# CONTEXTS
# =============================================================================

def _check_type(expected, value, what):
    if expected is not None and not isinstance(value, expected):
        raise TypeError(f"{what} must be {expected.__name__}, got {type(value).__name__}")


def create_staging(vertex):
    """
    Per-invocation scratch state a compute context writes into. The value is
    deep-copied so in-place mutation stays staged until the barrier commit.
    """
    return {
        "value": copy.deepcopy(vertex["value"]),
        "halted": False,
        "outbox": []
    }


def make_compute_context(job, vertex, staged):
    """
    Context for one compute invocation.

    Args:
        job: Graph job state (read for superstep, totals and type pins)
        vertex: The vertex being computed (read-only here)
        staged: Dict from create_staging(); receives value, halt and sends
    """
    vertex_id = vertex["id"]
    edges = tuple(vertex["edges"])
    superstep = job["superstep"]
    value_type = job["value_type"]
    message_type = job["message_type"]
    store = job["store"]

    def get_id():
        return vertex_id

    def get_value():
        return staged["value"]

    def set_value(value):
        _check_type(value_type, value, "Vertex value")
        staged["value"] = value
        return value

    def get_edges():
        return edges

    def get_num_edges():
        return len(edges)

    def get_superstep():
        return superstep

    def get_total_num_vertices():
        return len(store["index"])

    def get_total_num_edges():
        return store["num_edges"]

    def send_message(target_id, payload):
        _check_type(message_type, payload, "Message")
        staged["outbox"].append((vertex_id, target_id, payload))

    def send_message_to_neighbors(payload):
        _check_type(message_type, payload, "Message")
        for target_id, _ in edges:
            staged["outbox"].append((vertex_id, target_id, payload))

    def vote_to_halt():
        staged["halted"] = True

    return {
        "get_id": get_id,
        "get_value": get_value,
        "set_value": set_value,
        "get_edges": get_edges,
        "get_num_edges": get_num_edges,
        "get_superstep": get_superstep,
        "get_total_num_vertices": get_total_num_vertices,
        "get_total_num_edges": get_total_num_edges,
        "send_message": send_message,
        "send_message_to_neighbors": send_message_to_neighbors,
        "vote_to_halt": vote_to_halt
    }


def make_cleanup_context(job, vertex, records):
    """
    Context for the final cleanup invocation. Output goes through the job's
    writer into `records`; messaging and mutation are rejected.
    """
    vertex_id = vertex["id"]
    superstep = job["superstep"]
    writer = job["writer"]

    def write(record_vertex_id, record_value):
        record = writer(record_vertex_id, record_value)
        records.append(record)
        return record

    def forbidden(operation):
        def reject(*args, **kwargs):
            raise ComputeError(
                f"{operation} is not permitted during cleanup",
                superstep=superstep,
                vertex_id=vertex_id
            )
        return reject

    return {
        "get_id": lambda: vertex_id,
        "get_value": lambda: vertex["value"],
        "get_edges": lambda: tuple(vertex["edges"]),
        "get_superstep": lambda: superstep,
        "get_total_num_vertices": lambda: len(job["store"]["index"]),
        "write": write,
        "set_value": forbidden("set_value"),
        "send_message": forbidden("send_message"),
        "send_message_to_neighbors": forbidden("send_message_to_neighbors"),
        "vote_to_halt": forbidden("vote_to_halt")
    }
