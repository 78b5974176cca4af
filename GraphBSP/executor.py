"""
Vertex program executor: runs compute for the vertices planned in a superstep.

Compute never raises out of the executor; failures are captured in the result
dict so every worker finishes the superstep and the coordinator decides at the
barrier whether to commit or abort.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed

from .errors import ComputeError
from .graph_store import get_vertex, lookup_vertex, owner_partition
from .vertex_program import create_staging, make_cleanup_context, make_compute_context


def execute_vertex(job, vertex, inbox):
    """Execute a single compute invocation. Returns a result dict."""
    staged = create_staging(vertex)
    ctx = make_compute_context(job, vertex, staged)

    try:
        job["program"]["compute"](ctx, inbox)
        return {
            "status": "succeeded",
            "vertex_id": vertex["id"],
            "value": staged["value"],
            "halted": staged["halted"],
            "outbox": staged["outbox"],
            "inbox_size": len(inbox),
            "error": None
        }
    except Exception as e:
        return {
            "status": "failed",
            "vertex_id": vertex["id"],
            "value": vertex["value"],
            "halted": False,
            "outbox": [],
            "inbox_size": len(inbox),
            "error": e
        }


def execute_vertices(job, ready_vertices):
    """Serial dispatch in plan order."""
    store = job["store"]
    router = job["router"]
    return [
        execute_vertex(job, lookup_vertex(store, vertex_id), router["read"](vertex_id))
        for vertex_id in ready_vertices
    ]


def _execute_partition_worker(job, partition_index, vertex_ids):
    """Worker function: compute every ready vertex owned by one partition."""
    store = job["store"]
    router = job["router"]
    results = []
    for vertex_id in vertex_ids:
        vertex = get_vertex(store, partition_index, vertex_id)
        results.append(execute_vertex(job, vertex, router["read"](vertex_id)))
    return results


def execute_vertices_parallel(job, ready_vertices):
    """
    Execute ready vertices on a thread pool, one task per partition.

    Each vertex is touched by exactly one worker, so no locking is needed.
    Results come back in plan order regardless of completion order.
    """
    store = job["store"]
    groups = {}
    for vertex_id in ready_vertices:
        groups.setdefault(owner_partition(store, vertex_id), []).append(vertex_id)

    results_by_id = {}
    with ThreadPoolExecutor(max_workers=min(len(groups), job["max_workers"])) as executor:
        futures = {}
        for partition_index, vertex_ids in groups.items():
            future = executor.submit(_execute_partition_worker, job, partition_index, vertex_ids)
            futures[future] = vertex_ids

        for future in as_completed(futures):
            try:
                for result in future.result():
                    results_by_id[result["vertex_id"]] = result
            except Exception as e:
                for vertex_id in futures[future]:
                    results_by_id[vertex_id] = {
                        "status": "failed",
                        "vertex_id": vertex_id,
                        "value": None,
                        "halted": False,
                        "outbox": [],
                        "inbox_size": 0,
                        "error": e
                    }

    return [results_by_id[vertex_id] for vertex_id in ready_vertices]


def run_cleanup(job, vertex, records):
    """Invoke cleanup once for a vertex and move it to the terminal state."""
    cleanup = job["program"]["cleanup"]
    if cleanup is not None:
        ctx = make_cleanup_context(job, vertex, records)
        try:
            cleanup(ctx)
        except ComputeError:
            raise
        except Exception as e:
            raise ComputeError(
                f"Cleanup failed: {e}",
                superstep=job["superstep"],
                vertex_id=vertex["id"]
            ) from e

    vertex["active"] = False
    vertex["state"] = "terminal"
    return records
