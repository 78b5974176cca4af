"""
Loader/writer adapters and the table sources and sinks they read and write.

A table location is one of:
- a list or tuple of records (in-memory table; outputs must be lists)
- a path ending in ".csv"
- a dict: {"type": "records", "records": [...]}
          {"type": "csv", "path": ..., "skip_header": False, "delimiter": ","}
          {"type": "sqlite", "path": ..., "table": ..., "columns": [...]}

Loader contract: loader(record_num, record, ctx), where ctx["add_vertex"]
inserts a vertex into the job's graph store. Writer contract:
writer(vertex_id, vertex_value) -> output record.
"""

import csv
import importlib
import sqlite3

from .errors import ConfigError, LoadError
from .graph_store import add_edge, create_vertex, store_add_vertex


def stringify_truncated(obj, max_len=100):
    """Truncate string representation for display."""
    s = str(obj)
    return s if len(s) <= max_len else s[:max_len] + "..."


# =============================================================================
# COMPONENT RESOLUTION
# =============================================================================

def resolve_component(name):
    """Resolve a "package.module:attr" import string; other values pass through."""
    if not isinstance(name, str):
        return name

    if ":" in name:
        module_name, _, attr = name.partition(":")
    else:
        module_name, _, attr = name.rpartition(".")
    if not module_name or not attr:
        raise ConfigError(f"Cannot resolve component {name!r}; expected 'module:attr'")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import module {module_name!r} for {name!r}") from e
    try:
        return getattr(module, attr)
    except AttributeError as e:
        raise ConfigError(f"Module {module_name!r} has no attribute {attr!r}") from e


def as_loader(obj):
    if isinstance(obj, type):
        obj = obj()
    if hasattr(obj, "load"):
        return obj.load
    if callable(obj):
        return obj
    raise ConfigError(f"Not a graph loader: {obj!r}")


def default_writer(vertex_id, vertex_value):
    return (vertex_id, vertex_value)


def as_writer(obj):
    if obj is None:
        return default_writer
    if isinstance(obj, type):
        obj = obj()
    if hasattr(obj, "write"):
        return obj.write
    if callable(obj):
        return obj
    raise ConfigError(f"Not a record writer: {obj!r}")


# =============================================================================
# TABLE SOURCES
# =============================================================================

def _normalize_location(location):
    if isinstance(location, (list, tuple)):
        return {"type": "records", "records": location}
    if isinstance(location, str):
        if location.lower().endswith(".csv"):
            return {"type": "csv", "path": location}
        raise ConfigError(f"Unsupported table location {location!r}")
    if isinstance(location, dict) and location.get("type") in ("records", "csv", "sqlite"):
        return location
    raise ConfigError(f"Unsupported table location {stringify_truncated(location)}")


def describe_location(location):
    loc = _normalize_location(location)
    if loc["type"] == "records":
        return f"records[{len(loc['records'])}]"
    if loc["type"] == "sqlite":
        return f"sqlite:{loc['path']}#{loc['table']}"
    return f"csv:{loc['path']}"


def _check_table_name(table):
    if not isinstance(table, str) or not table.isidentifier():
        raise ConfigError(f"Invalid sqlite table name {table!r}")
    return table


def read_table(location):
    """Yield the records of a table location."""
    loc = _normalize_location(location)

    if loc["type"] == "records":
        yield from loc["records"]

    elif loc["type"] == "csv":
        with open(loc["path"], newline="") as f:
            reader = csv.reader(f, delimiter=loc.get("delimiter", ","))
            if loc.get("skip_header"):
                next(reader, None)
            for row in reader:
                if row:
                    yield row

    else:
        table = _check_table_name(loc["table"])
        conn = sqlite3.connect(loc["path"])
        try:
            cur = conn.execute(f"SELECT * FROM {table}")
            for row in cur:
                yield row
        finally:
            conn.close()


def run_loader(loader, location, store, debug=False):
    """
    Feed every record of `location` to `loader` exactly once.

    Returns the number of records read. Any failure is raised as LoadError
    naming the location and record number.
    """
    def add_vertex(vertex):
        return store_add_vertex(store, vertex)

    ctx = {
        "add_vertex": add_vertex,
        "create_vertex": create_vertex,
        "add_edge": add_edge
    }

    where = describe_location(location)
    count = 0
    try:
        for record_num, record in enumerate(read_table(location)):
            try:
                loader(record_num, record, ctx)
            except Exception as e:
                raise LoadError(
                    f"Failed to load record {record_num} from {where}: {e}",
                    context={"record": stringify_truncated(record)}
                ) from e
            count += 1
    except OSError as e:
        raise LoadError(f"Cannot read input {where}: {e}") from e
    except sqlite3.Error as e:
        raise LoadError(f"Cannot read input {where}: {e}") from e

    if debug:
        print(f"\033[36m[LOAD] {where}: {count} records\033[0m")
    return count


# =============================================================================
# TABLE SINKS
# =============================================================================

def _as_row(record):
    if isinstance(record, (list, tuple)):
        return list(record)
    return [record]


def check_sink(location):
    """Validate an output location. In-memory sinks must be lists."""
    loc = _normalize_location(location)
    if loc["type"] == "records" and not isinstance(loc["records"], list):
        raise ConfigError(f"In-memory output must be a list, got {type(loc['records']).__name__}")
    return loc


def write_table(location, records):
    """Write output records to a table location (csv files are overwritten). Returns records written."""
    loc = check_sink(location)
    rows = [_as_row(record) for record in records]

    if loc["type"] == "records":
        loc["records"].extend(records)

    elif loc["type"] == "csv":
        with open(loc["path"], "w", newline="") as f:
            writer = csv.writer(f, delimiter=loc.get("delimiter", ","))
            if loc.get("columns"):
                writer.writerow(loc["columns"])
            writer.writerows(rows)

    else:
        table = _check_table_name(loc["table"])
        width = max((len(row) for row in rows), default=len(loc.get("columns") or ()))
        columns = list(loc.get("columns") or [f"c{i}" for i in range(width)])
        for column in columns:
            _check_table_name(column)
        if not columns:
            return 0
        conn = sqlite3.connect(loc["path"])
        try:
            conn.execute(f"CREATE TABLE IF NOT EXISTS {table} ({', '.join(columns)})")
            placeholders = ", ".join("?" for _ in columns)
            conn.executemany(f"INSERT INTO {table} VALUES ({placeholders})", rows)
            conn.commit()
        finally:
            conn.close()

    return len(rows)
