"""
Partitioned vertex/edge storage for a single graph job.

Vertices are plain dicts; the store keeps them bucketed per partition in load
order. Structure is frozen (sealed) while supersteps run: vertex values and
activity flags change only through the coordinator's barrier commit.

Example:
    store = create_graph_store(num_partitions=2)
    v = create_vertex(1)
    add_edge(v, 2)
    store_add_vertex(store, v)
"""

import hashlib

from .errors import LoadError


VERTEX_STATES = ("uninitialized", "active", "halted", "terminal")


# =============================================================================
# VERTEX CONSTRUCTORS
# =============================================================================

def create_vertex(vertex_id, value=None, edges=None):
    """
    Create a vertex dict.

    Args:
        vertex_id: Comparable, hashable identity (immutable once created)
        value: Initial vertex value
        edges: Iterable of target ids or (target_id, edge_value) pairs

    Returns:
        Vertex dict in the "uninitialized" state
    """
    if vertex_id is None:
        raise LoadError("Vertex id must not be None")

    vertex = {
        "id": vertex_id,
        "value": value,
        "edges": [],
        "active": False,
        "state": "uninitialized"
    }
    for edge in edges or ():
        if isinstance(edge, tuple) and len(edge) == 2:
            add_edge(vertex, edge[0], edge[1])
        else:
            add_edge(vertex, edge)
    return vertex


def add_edge(vertex, target_id, edge_value=None):
    """Append a directed edge. Only valid before the vertex is loaded."""
    if vertex["state"] != "uninitialized":
        raise LoadError("Edges are fixed once a vertex is loaded", vertex_id=vertex["id"])
    if target_id is None:
        raise LoadError("Edge target must not be None", vertex_id=vertex["id"])
    vertex["edges"].append((target_id, edge_value))
    return vertex


# =============================================================================
# STORE
# =============================================================================

def _default_partitioner(vertex_id, num_partitions):
    # str hash() is salted per process; md5 keeps placement stable across runs
    if isinstance(vertex_id, int):
        return vertex_id % num_partitions
    digest = hashlib.md5(repr(vertex_id).encode()).hexdigest()
    return int(digest, 16) % num_partitions


def create_graph_store(num_partitions=1, partitioner=None):
    """Create an empty graph store with `num_partitions` partitions."""
    if num_partitions < 1:
        raise ValueError("num_partitions must be at least 1")

    return {
        "partitions": [{} for _ in range(num_partitions)],
        "index": {},
        "num_partitions": num_partitions,
        "partitioner": partitioner or _default_partitioner,
        "num_edges": 0,
        "sealed": False
    }


def store_add_vertex(store, vertex):
    """
    Bulk-insert a vertex during load. Returns the store.

    Raises LoadError on duplicate ids or once the store is sealed.
    """
    vertex_id = vertex["id"]
    if store["sealed"]:
        raise LoadError("Graph store is sealed; vertices cannot be added mid-job", vertex_id=vertex_id)
    if vertex_id in store["index"]:
        raise LoadError("Duplicate vertex id", vertex_id=vertex_id)

    partition_index = store["partitioner"](vertex_id, store["num_partitions"])
    if not 0 <= partition_index < store["num_partitions"]:
        raise LoadError(f"Partitioner returned invalid partition {partition_index}", vertex_id=vertex_id)

    vertex["active"] = True
    vertex["state"] = "active"
    store["partitions"][partition_index][vertex_id] = vertex
    store["index"][vertex_id] = partition_index
    store["num_edges"] += len(vertex["edges"])
    return store


def seal_store(store):
    store["sealed"] = True
    return store


def unseal_store(store):
    store["sealed"] = False
    return store


def clear_store(store):
    """Drop every vertex, keeping partition settings."""
    store["partitions"] = [{} for _ in range(store["num_partitions"])]
    store["index"] = {}
    store["num_edges"] = 0
    store["sealed"] = False
    return store


# =============================================================================
# LOOKUPS
# =============================================================================

def owner_partition(store, vertex_id):
    """Partition index owning `vertex_id`, or None if the id is unknown."""
    return store["index"].get(vertex_id)


def get_vertex(store, partition_index, vertex_id):
    """Local lookup: the vertex if `partition_index` owns it, else None."""
    return store["partitions"][partition_index].get(vertex_id)


def lookup_vertex(store, vertex_id):
    partition_index = store["index"].get(vertex_id)
    if partition_index is None:
        return None
    return store["partitions"][partition_index][vertex_id]


def iter_partition(store, partition_index):
    return iter(store["partitions"][partition_index].values())


def iter_vertices(store):
    """All vertices in partition order, then load order."""
    for partition in store["partitions"]:
        yield from partition.values()


def vertex_ids(store):
    return [vertex["id"] for vertex in iter_vertices(store)]


def num_vertices(store):
    return len(store["index"])


def num_edges(store):
    return store["num_edges"]
