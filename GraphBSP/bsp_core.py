"""
BSP (Bulk Synchronous Parallel) graph job coordinator in functional style.

This module drives the superstep loop over a partitioned graph:
- Functions take the job state as first argument and return it
- Enables chaining: run(set_vertex_program(add_input(graph_job(), ...), ...))
- The GraphJob class wraps the same functions with method-style access

Superstep loop:
    plan      -> every active vertex, plus halted vertices with new messages
    execute   -> compute once per planned vertex (serial or thread pool)
    barrier   -> commit staged values/halts, route+combine outboxes, swap inboxes
    halt?     -> no active vertex and no message in flight ends the job
    cleanup   -> once per vertex, output records go to the job's outputs

Example (functional):
    job = graph_job(debug=False)
    job = set_loader(job, load_edge_list)
    job = set_vertex_program(job, create_vertex_program(compute, cleanup))
    job = set_combiner(job, create_min_combiner())
    job = add_input(job, [(1, "2,3"), (2, "1"), (3, "1")])
    values = run(job)

Example (imperative):
    job = GraphJob(debug=False)
    job.add_vertex(1, edges=[2]).add_vertex(2, edges=[1])

    @job.compute
    def propagate(ctx, messages):
        ...

    values = job.run()
"""

import threading
from multiprocessing import cpu_count

from .adapters import (
    as_loader, as_writer, check_sink, default_writer, resolve_component, run_loader,
    stringify_truncated, write_table
)
from .combiners import as_combiner
from .errors import (
    CombinerError, ComputeError, ConfigError, JobCancelledError, LoadError,
    RoutingError
)
from .executor import execute_vertices, execute_vertices_parallel, run_cleanup
from .graph_store import (
    clear_store, create_graph_store, create_vertex, iter_vertices, lookup_vertex,
    num_edges, num_vertices, seal_store, store_add_vertex
)
from .router import create_message_router
from .vertex_program import as_vertex_program, create_vertex_program


# =============================================================================
# CORE DATA CONSTRUCTORS
# =============================================================================

def graph_job(debug=True, parallel=False, max_workers=None, num_partitions=1,
              partitioner=None, value_type=None, message_type=None):
    """
    Create a new graph job data structure.

    Args:
        debug: Print coloured trace lines while running
        parallel: Compute partitions on a thread pool
        max_workers: Thread pool size (defaults to cpu_count())
        num_partitions: Number of graph store partitions
        partitioner: Optional (vertex_id, num_partitions) -> partition index
        value_type: If given, every vertex value set by compute must be an instance
        message_type: If given, every message payload must be an instance

    Returns:
        Job state dict
    """
    if debug:
        print("\033[36m[INIT] BSP graph job initialized\033[0m")
        if parallel:
            print(f"\033[36m[INIT] Parallel mode enabled with {max_workers or cpu_count()} workers\033[0m")

    store = create_graph_store(num_partitions, partitioner)
    return {
        "type": "GraphJob",
        "store": store,
        "router": create_message_router(store),
        "program": None,
        "combiner": None,
        "loader": None,
        "writer": default_writer,
        "inputs": [],
        "outputs": [],
        "seed_vertices": [],
        "superstep": 0,
        "status": "created",
        "loaded_inputs": 0,
        "debug": debug,
        "parallel": parallel,
        "max_workers": max_workers if max_workers else cpu_count(),
        "value_type": value_type,
        "message_type": message_type,
        "cancel_event": threading.Event(),
        "output_records": [],
        "stats": _empty_stats()
    }


def _empty_stats():
    return {
        "supersteps": 0,
        "vertex_executions": 0,
        "messages_sent": 0,
        "messages_delivered": 0,
        "history": []
    }


def _check_configurable(job, what):
    if job["status"] not in ("created", "loaded"):
        raise ConfigError(f"Cannot change {what} once the job has started (status={job['status']}); call reset()")


# =============================================================================
# JOB CONFIGURATION
# =============================================================================

def set_vertex_program(job, program):
    """Set the vertex program (dict, class, or object with compute/cleanup)."""
    _check_configurable(job, "the vertex program")
    job["program"] = as_vertex_program(program)
    if job["debug"]:
        print(f"\033[36m[REGISTER] Vertex program '{job['program']['type']}'\033[0m")
    return job


def set_combiner(job, combiner):
    """Set or clear (None) the message combiner."""
    _check_configurable(job, "the combiner")
    job["combiner"] = as_combiner(combiner)
    job["router"] = create_message_router(job["store"], job["combiner"])
    if job["debug"]:
        name = job["combiner"]["type"] if job["combiner"] else None
        print(f"\033[36m[REGISTER] Combiner '{name}'\033[0m")
    return job


def set_loader(job, loader):
    _check_configurable(job, "the loader")
    job["loader"] = as_loader(loader)
    return job


def set_writer(job, writer):
    _check_configurable(job, "the writer")
    job["writer"] = as_writer(writer)
    return job


def add_input(job, location):
    _check_configurable(job, "inputs")
    job["inputs"].append(location)
    return job


def add_output(job, location):
    _check_configurable(job, "outputs")
    check_sink(location)
    job["outputs"].append(location)
    return job


def add_vertex(job, vertex, value=None, edges=None):
    """
    Insert a vertex directly, bypassing the loader. Returns the job.

    Args:
        job: Job state
        vertex: A vertex dict from create_vertex(), or a vertex id
        value: Initial value when `vertex` is an id
        edges: Edge targets or (target, edge_value) pairs when `vertex` is an id
    """
    _check_configurable(job, "the graph")
    if not isinstance(vertex, dict):
        vertex = create_vertex(vertex, value, edges)
    store_add_vertex(job["store"], vertex)
    job["seed_vertices"].append((vertex["id"], vertex["value"], list(vertex["edges"])))
    return job


def load(job):
    """
    Run the loader over every input not loaded yet. Each record reaches the
    loader once; a LoadError fails the job before superstep 0.
    """
    if job["status"] in ("completed", "failed", "cancelled"):
        raise ConfigError(f"Job already {job['status']}; call reset() before loading again")
    pending = job["inputs"][job["loaded_inputs"]:]
    if job["status"] != "created" and not pending:
        return job
    if pending and job["loader"] is None:
        raise ConfigError("Inputs were added but no loader is set")

    for location in pending:
        try:
            run_loader(job["loader"], location, job["store"], debug=job["debug"])
        except LoadError as e:
            raise _fail(job, e)
        job["loaded_inputs"] += 1

    job["status"] = "loaded"
    if job["debug"]:
        print(f"\033[36m[LOAD] Graph loaded: {num_vertices(job['store'])} vertices, "
              f"{num_edges(job['store'])} edges, {job['store']['num_partitions']} partitions\033[0m")
    return job


def _ensure_started(job):
    if job["status"] in ("running", "halted"):
        return job
    if job["status"] in ("completed", "failed", "cancelled"):
        raise ConfigError(f"Job already {job['status']}; call reset() before running again")
    if job["program"] is None:
        raise ConfigError("No vertex program set")

    load(job)
    seal_store(job["store"])
    job["status"] = "running"
    return job


# =============================================================================
# EXECUTION
# =============================================================================

def _plan(job):
    """
    Determine which vertices compute in the current superstep.
    Returns list of vertex ids in partition/load order.
    """
    router = job["router"]
    ready_vertices = []

    for vertex in iter_vertices(job["store"]):
        if vertex["active"]:
            ready_vertices.append(vertex["id"])
        elif router["has_messages"](vertex["id"]):
            vertex["active"] = True
            vertex["state"] = "active"
            if job["debug"]:
                print(f"\033[33m[REACTIVATE] {vertex['id']} received message, reactivating\033[0m")
            ready_vertices.append(vertex["id"])

    if job["debug"] and ready_vertices:
        print(f"\033[35m[PLAN] Superstep {job['superstep']}: vertices={stringify_truncated(ready_vertices)}\033[0m")

    return ready_vertices


def _fail(job, error):
    job["status"] = "failed"
    if job["debug"]:
        print(f"\033[31m[FAIL] {error}\033[0m")
    return error


def _barrier(job, results):
    """
    BSP barrier: route outboxes, commit staged vertex state, swap buffers.

    Routing runs before the commit so a RoutingError or CombinerError leaves
    vertex state as it was at the start of the superstep.
    """
    superstep = job["superstep"]
    router = job["router"]
    store = job["store"]

    try:
        for result in results:
            router["flush"](result["outbox"], superstep)
    except (RoutingError, CombinerError) as e:
        raise _fail(job, e)

    halted_vertices = []
    for result in results:
        vertex = lookup_vertex(store, result["vertex_id"])
        vertex["value"] = result["value"]
        if job["debug"]:
            print(f"\033[35m[EXECUTE] {vertex['id']}: inbox={stringify_truncated(router['read'](vertex['id']))}"
                  f" value={stringify_truncated(vertex['value'])} sent={len(result['outbox'])}\033[0m")
        if result["halted"]:
            vertex["active"] = False
            vertex["state"] = "halted"
            halted_vertices.append(vertex["id"])
            if job["debug"]:
                print(f"\033[33m[HALT] {vertex['id']} voted to halt\033[0m")

    sent, delivered = router["swap"]()
    if job["debug"]:
        print(f"\033[36m[BARRIER] Superstep {superstep}: sent={sent}, delivered={delivered}\033[0m")
    return halted_vertices, sent, delivered


def run_step(job):
    """
    Execute a single superstep. Returns (job, step_info) where step_info contains:
    - superstep: The superstep number that ran
    - executed_vertices: Vertex ids that computed
    - halted_vertices: Vertex ids that voted to halt
    - messages_sent: Messages sent before combining
    - messages_delivered: Inbox entries delivered to the next superstep
    - active_vertices: Number of vertices still active

    Returns (job, None) once the global halt condition holds.
    Raises JobCancelledError if cancel() was requested, ComputeError if any
    vertex compute failed (nothing from that superstep is committed).
    """
    _ensure_started(job)

    if job["cancel_event"].is_set():
        job["status"] = "cancelled"
        if job["debug"]:
            print(f"\033[33m[CANCEL] Job cancelled at superstep {job['superstep']}\033[0m")
        raise JobCancelledError("Job cancelled", superstep=job["superstep"])

    ready_vertices = _plan(job)

    if not ready_vertices:
        job["status"] = "halted"
        if job["debug"]:
            print(f"\033[36m[TERMINATE] No active vertices and no messages at superstep {job['superstep']}\033[0m")
        return job, None

    if job["parallel"] and len(ready_vertices) > 1:
        results = execute_vertices_parallel(job, ready_vertices)
    else:
        results = execute_vertices(job, ready_vertices)

    for result in results:
        if result["status"] == "failed":
            error = result["error"]
            raise _fail(job, ComputeError(
                f"Vertex compute failed: {error!r}",
                superstep=job["superstep"],
                vertex_id=result["vertex_id"]
            )) from error

    halted_vertices, sent, delivered = _barrier(job, results)

    step_info = {
        "superstep": job["superstep"],
        "executed_vertices": list(ready_vertices),
        "halted_vertices": halted_vertices,
        "messages_sent": sent,
        "messages_delivered": delivered,
        "active_vertices": sum(1 for v in iter_vertices(job["store"]) if v["active"])
    }

    stats = job["stats"]
    stats["supersteps"] += 1
    stats["vertex_executions"] += len(ready_vertices)
    stats["messages_sent"] += sent
    stats["messages_delivered"] += delivered
    stats["history"].append({
        "superstep": job["superstep"],
        "executed": len(ready_vertices),
        "sent": sent,
        "delivered": delivered
    })

    job["superstep"] += 1
    return job, step_info


def _cleanup(job):
    """Invoke cleanup once per vertex and write output records."""
    records = []
    try:
        for vertex in iter_vertices(job["store"]):
            run_cleanup(job, vertex, records)
    except ComputeError as e:
        raise _fail(job, e)

    job["output_records"] = records
    if job["debug"]:
        print(f"\033[36m[CLEANUP] {num_vertices(job['store'])} vertices, {len(records)} records\033[0m")

    for location in job["outputs"]:
        written = write_table(location, records)
        if job["debug"]:
            print(f"\033[32m[WRITE] {written} records -> {stringify_truncated(location, 40)}\033[0m")

    job["status"] = "completed"
    return job


def run(job, max_supersteps=None):
    """
    Run the job to completion.

    Args:
        job: Job state
        max_supersteps: Stop after this many supersteps even if vertices are
            still active (None means no limit)

    Returns:
        Dict mapping vertex ids to their final values
    """
    if job["debug"]:
        print("\033[36m\n[START] Beginning BSP execution\033[0m")

    _ensure_started(job)

    while max_supersteps is None or job["superstep"] < max_supersteps:
        job, step_info = run_step(job)
        if step_info is None:
            break
    else:
        if job["debug"]:
            print(f"\033[33m[LIMIT] Stopped at max_supersteps={max_supersteps} with work remaining\033[0m")

    _cleanup(job)

    if job["debug"]:
        print(f"\033[36m[COMPLETE] Finished after {job['superstep']} supersteps\033[0m")
        print(f"\033[36m[FINAL STATE] {stringify_truncated(get_vertex_values(job))}\033[0m")

    return get_vertex_values(job)


def cancel(job):
    """Request cancellation; honoured at the next superstep barrier. Thread-safe."""
    job["cancel_event"].set()
    if job["debug"]:
        print("\033[33m[CANCEL] Cancellation requested\033[0m")
    return job


def reset(job):
    """
    Reset the job to its pre-run state. Returns the reset job.

    Directly added vertices are recreated with their original values; inputs
    are read again on the next run.
    """
    store = clear_store(job["store"])
    for vertex_id, value, edges in job["seed_vertices"]:
        store_add_vertex(store, create_vertex(vertex_id, value, edges))

    job["router"] = create_message_router(store, job["combiner"])
    job["superstep"] = 0
    job["status"] = "created"
    job["loaded_inputs"] = 0
    job["cancel_event"] = threading.Event()
    job["output_records"] = []
    job["stats"] = _empty_stats()

    if job["debug"]:
        print("\033[36m[RESET] Job state cleared\033[0m")

    return job


# =============================================================================
# GRAPHVIZ EXPORT
# =============================================================================

def to_graphviz(job, show_values=True, title=None, rankdir="LR"):
    """Export the vertex graph to Graphviz DOT format."""
    lines = []
    lines.append('digraph GraphJob {')
    lines.append(f'    rankdir={rankdir};')
    lines.append('    node [fontname="Arial", shape=circle, style=filled];')
    lines.append('    edge [fontname="Arial"];')

    if title:
        lines.append('    labelloc="t";')
        lines.append(f'    label="{title} (superstep {job["superstep"]})";')
    lines.append('')

    colors = {
        "uninitialized": "white",
        "active": "lightyellow",
        "halted": "lightgray",
        "terminal": "lightgreen"
    }

    lines.append('    // Vertices')
    for vertex in iter_vertices(job["store"]):
        if show_values:
            label = f"{vertex['id']}\\n{stringify_truncated(vertex['value'], 20)}"
        else:
            label = str(vertex["id"])
        fillcolor = colors.get(vertex["state"], "white")
        lines.append(f'    "{vertex["id"]}" [fillcolor="{fillcolor}", label="{label}"];')
    lines.append('')

    lines.append('    // Edges')
    for vertex in iter_vertices(job["store"]):
        for target_id, edge_value in vertex["edges"]:
            if edge_value is None:
                lines.append(f'    "{vertex["id"]}" -> "{target_id}";')
            else:
                lines.append(f'    "{vertex["id"]}" -> "{target_id}" [label="{stringify_truncated(edge_value, 20)}"];')

    lines.append('}')
    return '\n'.join(lines)


def save_graphviz(job, filepath, **kwargs):
    """Save the vertex graph to a DOT file."""
    dot = to_graphviz(job, **kwargs)
    with open(filepath, 'w') as f:
        f.write(dot)
    if job["debug"]:
        print(f"\033[32m[EXPORT] Saved graph to {filepath}\033[0m")
    return job


def render_graphviz(job, filepath, format="png", **kwargs):
    """Render the vertex graph to an image. Requires Graphviz installed."""
    import subprocess
    import shutil

    if not shutil.which("dot"):
        if job["debug"]:
            print("\033[33m[WARNING] Graphviz 'dot' not found. Install Graphviz to render.\033[0m")
        return job

    output_path = f"{filepath}.{format}"
    result = subprocess.run(
        ["dot", f"-T{format}", "-o", output_path],
        input=to_graphviz(job, **kwargs), text=True, capture_output=True, timeout=30
    )
    if job["debug"]:
        if result.returncode == 0:
            print(f"\033[32m[RENDER] Saved image to {output_path}\033[0m")
        else:
            print(f"\033[31m[ERROR] Graphviz: {result.stderr}\033[0m")
    return job


# =============================================================================
# STATE ACCESSORS
# =============================================================================

def get_superstep(job):
    return job["superstep"]


def get_status(job):
    return job["status"]


def get_vertex_values(job):
    """Map of vertex id -> current value."""
    return {vertex["id"]: vertex["value"] for vertex in iter_vertices(job["store"])}


def get_vertex_states(job):
    return {vertex["id"]: vertex["state"] for vertex in iter_vertices(job["store"])}


def get_active_vertices(job):
    return [vertex["id"] for vertex in iter_vertices(job["store"]) if vertex["active"]]


def get_output_records(job):
    return list(job["output_records"])


def get_stats(job):
    stats = dict(job["stats"])
    stats["history"] = list(job["stats"]["history"])
    stats["num_vertices"] = num_vertices(job["store"])
    stats["num_edges"] = num_edges(job["store"])
    return stats


# =============================================================================
# OOP WRAPPER CLASS
# =============================================================================

class GraphJob:
    """
    Object-oriented wrapper around the functional job API:
        job = GraphJob(debug=False, num_partitions=4)
        job.set_loader(loader).set_vertex_program(CCVertex).add_input(records)
        values = job.run()
    """

    def __init__(self, debug=True, parallel=False, max_workers=None, num_partitions=1,
                 partitioner=None, value_type=None, message_type=None):
        self._job = graph_job(
            debug=debug, parallel=parallel, max_workers=max_workers,
            num_partitions=num_partitions, partitioner=partitioner,
            value_type=value_type, message_type=message_type
        )

    def set_vertex_program(self, program):
        self._job = set_vertex_program(self._job, program)
        return self

    def set_combiner(self, combiner):
        self._job = set_combiner(self._job, combiner)
        return self

    def set_loader(self, loader):
        self._job = set_loader(self._job, loader)
        return self

    def set_writer(self, writer):
        self._job = set_writer(self._job, writer)
        return self

    def add_input(self, location):
        self._job = add_input(self._job, location)
        return self

    def add_output(self, location):
        self._job = add_output(self._job, location)
        return self

    def add_vertex(self, vertex, value=None, edges=None):
        self._job = add_vertex(self._job, vertex, value, edges)
        return self

    def compute(self, func=None, cleanup=None, name=None):
        """Decorator registering a compute function as the vertex program."""
        def decorator(f):
            self.set_vertex_program(create_vertex_program(f, cleanup, name))
            return f
        if func is not None:
            return decorator(func)
        return decorator

    def load(self):
        self._job = load(self._job)
        return self

    def run(self, max_supersteps=None):
        return run(self._job, max_supersteps)

    def run_step(self):
        self._job, step_info = run_step(self._job)
        return step_info

    def cancel(self):
        self._job = cancel(self._job)
        return self

    def reset(self):
        self._job = reset(self._job)
        return self

    def to_graphviz(self, **kwargs):
        return to_graphviz(self._job, **kwargs)

    def save_graphviz(self, filepath, **kwargs):
        self._job = save_graphviz(self._job, filepath, **kwargs)
        return self

    def render_graphviz(self, filepath, format="png", **kwargs):
        self._job = render_graphviz(self._job, filepath, format, **kwargs)
        return self

    @property
    def superstep(self):
        return get_superstep(self._job)

    @property
    def status(self):
        return get_status(self._job)

    @property
    def values(self):
        return get_vertex_values(self._job)

    @property
    def vertex_states(self):
        return get_vertex_states(self._job)

    @property
    def active_vertices(self):
        return get_active_vertices(self._job)

    @property
    def output_records(self):
        return get_output_records(self._job)

    @property
    def stats(self):
        return get_stats(self._job)

    @property
    def store(self):
        return self._job["store"]

    @property
    def debug(self):
        return self._job["debug"]

    @property
    def parallel(self):
        return self._job["parallel"]

    @property
    def max_workers(self):
        return self._job["max_workers"]

    @property
    def num_partitions(self):
        return self._job["store"]["num_partitions"]


# =============================================================================
# CONFIGURATION
# =============================================================================

CONFIG_KEYS = {
    "loader", "vertex_program", "combiner", "writer", "inputs", "outputs",
    "debug", "parallel", "max_workers", "num_partitions", "partitioner",
    "max_supersteps", "value_type", "message_type"
}


def create_graph_job(config):
    """
    Create a GraphJob from a configuration dict.

    Components (loader, vertex_program, combiner, writer, partitioner,
    value_type, message_type) may be objects or "module:attr" strings.
    """
    unknown = set(config) - CONFIG_KEYS
    if unknown:
        raise ConfigError(f"Unknown job configuration keys: {sorted(unknown)}")
    if config.get("vertex_program") is None:
        raise ConfigError("Job configuration requires a vertex_program")

    job = GraphJob(
        debug=config.get("debug", False),
        parallel=config.get("parallel", False),
        max_workers=config.get("max_workers"),
        num_partitions=config.get("num_partitions", 1),
        partitioner=resolve_component(config.get("partitioner")),
        value_type=resolve_component(config.get("value_type")),
        message_type=resolve_component(config.get("message_type"))
    )

    job.set_vertex_program(resolve_component(config["vertex_program"]))
    if config.get("loader") is not None:
        job.set_loader(resolve_component(config["loader"]))
    if config.get("combiner") is not None:
        job.set_combiner(resolve_component(config["combiner"]))
    if config.get("writer") is not None:
        job.set_writer(resolve_component(config["writer"]))

    for location in config.get("inputs", []):
        job.add_input(location)
    for location in config.get("outputs", []):
        job.add_output(location)

    return job


def run_graph_job(config):
    """Create and run a GraphJob from a configuration dict. Returns (job, values)."""
    job = create_graph_job(config)
    values = job.run(max_supersteps=config.get("max_supersteps"))
    return job, values
