"""
Connected Components - minimum vertex id propagation

Every vertex starts with its own id as value and broadcasts it to its
neighbours. A vertex that receives a smaller id adopts it and broadcasts again;
otherwise it votes to halt. At the end every vertex holds the smallest id of
its component.

Input table (one row per vertex, comma separated outgoing edge targets):
    v, es
    1, "2,3"
    2, "1,4"
    3, "1,4"
    4, "2,3"

Usage:
    python samples/connected_components_example.py [input.csv output.csv]
"""

import sys
import os
import time
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from GraphBSP import GraphJob, create_min_combiner


class CCVertex:
    """Vertex program: value is the smallest vertex id seen so far."""

    def compute(self, ctx, messages):
        if ctx["get_superstep"]() == 0:
            ctx["set_value"](ctx["get_id"]())
            ctx["send_message_to_neighbors"](ctx["get_value"]())
            ctx["vote_to_halt"]()
            return

        min_id = min(messages) if messages else ctx["get_value"]()
        if min_id < ctx["get_value"]():
            ctx["set_value"](min_id)
            ctx["send_message_to_neighbors"](min_id)
        ctx["vote_to_halt"]()

    def cleanup(self, ctx):
        ctx["write"](ctx["get_id"](), ctx["get_value"]())


def load_cc_vertex(record_num, record, ctx):
    """Loader: (v, "t1,t2,...") -> one vertex with unit-valued edges."""
    vertex = ctx["create_vertex"](int(record[0]))
    edges = str(record[1]).strip() if len(record) > 1 else ""
    for target in edges.split(","):
        if target.strip():
            ctx["add_edge"](vertex, int(target))
    ctx["add_vertex"](vertex)


SQUARE_GRAPH = [
    (1, "2,3"),
    (2, "1,4"),
    (3, "1,4"),
    (4, "2,3"),
    (5, "6"),
    (6, "5"),
    (7, ""),
]


def run_connected_components(inputs, outputs, debug=True):
    job = GraphJob(debug=debug, value_type=int, message_type=int)
    job.set_loader(load_cc_vertex)
    job.set_vertex_program(CCVertex)
    job.set_combiner(create_min_combiner())
    for location in inputs:
        job.add_input(location)
    for location in outputs:
        job.add_output(location)

    start = time.time()
    values = job.run()
    print(f"Job Finished in {time.time() - start:.3f} seconds")
    return job, values


if __name__ == "__main__":
    if len(sys.argv) == 3:
        run_connected_components([sys.argv[1]], [sys.argv[2]])
    elif len(sys.argv) == 1:
        print("\033[36m=== CONNECTED COMPONENTS EXAMPLE ===\033[0m")
        print("  1 -- 2     5 -- 6     7")
        print("  |    |")
        print("  3 -- 4\n")
        output = []
        job, values = run_connected_components([SQUARE_GRAPH], [output], debug=True)

        print("\n\033[32m=== RESULTS ===\033[0m")
        for vertex_id, min_id in sorted(output):
            print(f"  vertex {vertex_id}: component {min_id}")

        expected = {1: 1, 2: 1, 3: 1, 4: 1, 5: 5, 6: 5, 7: 7}
        print(f"\nVerification: {'PASS' if values == expected else 'FAIL'} (supersteps={job.superstep})")
    else:
        print("Usage: connected_components_example.py <input.csv> <output.csv>")
        sys.exit(-1)
