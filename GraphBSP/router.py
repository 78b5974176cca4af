"""
Double-buffered message router, BSP compliant.

Per the Pregel BSP model:
- Messages written during superstep S go to the pending buffer, bucketed by
  the partition that owns the target vertex
- swap() is the barrier: pending is sealed into the immutable inboxes read
  during superstep S+1, and a fresh pending buffer is started
- read() during superstep S+1 only ever sees messages from superstep S

With a combiner, all pending messages for one target are folded into a single
payload as they are buffered, so every inbox holds at most one entry.
"""

from .errors import CombinerError, RoutingError
from .graph_store import owner_partition


def create_message_router(store, combiner=None):
    """
    Create a message router bound to a graph store.

    Args:
        store: Graph store used to resolve target vertices
        combiner: Optional combiner dict (see combiners.create_combiner)

    Returns:
        Router dict of closures
    """
    num_partitions = store["num_partitions"]

    state = {
        "current": {},                                      # Sealed inboxes: target -> tuple
        "pending": [{} for _ in range(num_partitions)],     # Buffered writes per partition
        "stats": {
            "messages_sent": 0,
            "messages_delivered": 0,
            "last_sent": 0,
            "last_delivered": 0
        }
    }

    def write(sender_id, target_id, payload, superstep=None):
        partition_index = owner_partition(store, target_id)
        if partition_index is None:
            raise RoutingError(
                f"Message addressed to unknown vertex {target_id!r}",
                superstep=superstep,
                vertex_id=sender_id,
                context={"target": target_id}
            )

        bucket = state["pending"][partition_index]
        if combiner is None:
            bucket.setdefault(target_id, []).append(payload)
        elif target_id in bucket:
            try:
                bucket[target_id] = combiner["combine"](target_id, bucket[target_id], payload)
            except Exception as e:
                raise CombinerError(
                    f"Combiner {combiner['type']} failed: {e}",
                    superstep=superstep,
                    vertex_id=target_id
                ) from e
        else:
            bucket[target_id] = payload

        state["stats"]["last_sent"] += 1
        return payload

    def flush(outbox, superstep=None):
        """Buffer a vertex outbox of (sender_id, target_id, payload) triples."""
        for sender_id, target_id, payload in outbox:
            write(sender_id, target_id, payload, superstep)
        return len(outbox)

    def swap():
        # BSP barrier: pending becomes the next superstep's sealed inboxes
        inboxes = {}
        for bucket in state["pending"]:
            for target_id, buffered in bucket.items():
                inboxes[target_id] = (buffered,) if combiner is not None else tuple(buffered)

        delivered = sum(len(inbox) for inbox in inboxes.values())
        state["current"] = inboxes
        state["pending"] = [{} for _ in range(num_partitions)]

        stats = state["stats"]
        stats["messages_sent"] += stats["last_sent"]
        stats["messages_delivered"] += delivered
        stats["last_delivered"] = delivered
        sent = stats["last_sent"]
        stats["last_sent"] = 0
        return sent, delivered

    def read(vertex_id):
        return state["current"].get(vertex_id, ())

    def has_messages(vertex_id):
        return vertex_id in state["current"]

    def targets():
        return list(state["current"].keys())

    def has_pending():
        return any(bucket for bucket in state["pending"])

    def in_flight():
        return bool(state["current"]) or has_pending()

    def clear():
        state["current"] = {}
        state["pending"] = [{} for _ in range(num_partitions)]
        state["stats"] = {
            "messages_sent": 0,
            "messages_delivered": 0,
            "last_sent": 0,
            "last_delivered": 0
        }

    def get_stats():
        return dict(state["stats"])

    return {
        "write": write,
        "flush": flush,
        "swap": swap,
        "read": read,
        "has_messages": has_messages,
        "targets": targets,
        "has_pending": has_pending,
        "in_flight": in_flight,
        "clear": clear,
        "get_stats": get_stats,
        "type": "Combining" if combiner is not None else "Multiset"
    }
