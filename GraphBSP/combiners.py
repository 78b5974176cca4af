"""
Message combiners.

A combiner folds every message buffered for one target vertex into a single
payload before delivery: combine(vertex_id, accumulated, incoming) -> merged.

Folding is applied in sender order, so a non-commutative combiner yields
repeatable but order-dependent results. The engine does not check
commutativity.
"""

from .errors import ConfigError


def create_combiner(func, name=None):
    """
    Wrap a fold function as a combiner.

    Args:
        func: Callable (vertex_id, accumulated, incoming) -> merged
        name: Label used in debug output

    Returns:
        Combiner dict
    """
    if not callable(func):
        raise ConfigError(f"Combiner must be callable, got {type(func).__name__}")

    return {
        "combine": func,
        "type": name or getattr(func, "__name__", "Combiner")
    }


def create_min_combiner():
    """Keep the smallest message."""
    def combine(vertex_id, accumulated, incoming):
        return incoming if incoming < accumulated else accumulated
    return create_combiner(combine, "MinCombiner")


def create_max_combiner():
    """Keep the largest message."""
    def combine(vertex_id, accumulated, incoming):
        return incoming if incoming > accumulated else accumulated
    return create_combiner(combine, "MaxCombiner")


def create_sum_combiner():
    """Add messages together."""
    def combine(vertex_id, accumulated, incoming):
        return accumulated + incoming
    return create_combiner(combine, "SumCombiner")


def as_combiner(obj):
    """
    Normalize a user-supplied combiner.

    Accepts None, a combiner dict, a class with a `combine` method
    (instantiated with no arguments), an object with `combine`, or a plain
    callable.
    """
    if obj is None:
        return None
    if isinstance(obj, dict):
        if "combine" not in obj:
            raise ConfigError("Combiner dict requires a 'combine' function")
        return create_combiner(obj["combine"], obj.get("type"))
    if isinstance(obj, type):
        if not hasattr(obj, "combine"):
            raise ConfigError(f"Combiner class {obj.__name__} has no combine method")
        return create_combiner(obj().combine, obj.__name__)
    if hasattr(obj, "combine"):
        return create_combiner(obj.combine, type(obj).__name__)
    return create_combiner(obj)
