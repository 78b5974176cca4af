import unittest
import sys
import os
import random
from collections import deque
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from GraphBSP import GraphJob, RoutingError, create_combiner, create_min_combiner


class CCVertex:
    """Propagate the smallest vertex id seen along outgoing edges."""

    def __init__(self):
        self.calls = {}

    def compute(self, ctx, messages):
        vertex_id = ctx["get_id"]()
        self.calls[vertex_id] = self.calls.get(vertex_id, 0) + 1

        if ctx["get_superstep"]() == 0:
            ctx["set_value"](vertex_id)
            ctx["send_message_to_neighbors"](vertex_id)
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
    vertex = ctx["create_vertex"](int(record[0]))
    for target in str(record[1]).split(","):
        if target.strip():
            ctx["add_edge"](vertex, int(target))
    ctx["add_vertex"](vertex)


def adjacency_to_records(adjacency):
    return [(v, ",".join(str(t) for t in targets)) for v, targets in adjacency.items()]


def make_cc_job(adjacency, combiner=None, **kwargs):
    job = GraphJob(debug=False, value_type=int, message_type=int, **kwargs)
    program = CCVertex()
    job.set_loader(load_cc_vertex)
    job.set_vertex_program(program)
    if combiner is not None:
        job.set_combiner(combiner)
    job.add_input(adjacency_to_records(adjacency))
    return job, program


def expected_components(adjacency):
    """Minimum id reachable from each vertex (BFS over the edge lists)."""
    expected = {}
    for start in adjacency:
        seen = {start}
        queue = deque([start])
        while queue:
            for target in adjacency[queue.popleft()]:
                if target not in seen:
                    seen.add(target)
                    queue.append(target)
        expected[start] = min(seen)
    return expected


def random_symmetric_graph(num_vertices, num_edges, seed):
    rng = random.Random(seed)
    adjacency = {v: [] for v in range(1, num_vertices + 1)}
    for _ in range(num_edges):
        a, b = rng.sample(range(1, num_vertices + 1), 2)
        if b not in adjacency[a]:
            adjacency[a].append(b)
            adjacency[b].append(a)
    return adjacency


SQUARE = {1: [2, 3], 2: [1, 4], 3: [1, 4], 4: [2, 3]}


class TestConnectedComponents(unittest.TestCase):

    def test_square_converges_within_two_supersteps(self):
        job, _ = make_cc_job(SQUARE, create_min_combiner())
        job.load()

        for _ in range(3):
            self.assertIsNotNone(job.run_step())
        self.assertEqual(job.values, {1: 1, 2: 1, 3: 1, 4: 1})

        values = job.run()
        self.assertEqual(values, {1: 1, 2: 1, 3: 1, 4: 1})
        self.assertEqual(job.superstep, 4)

    def test_two_disjoint_edges(self):
        output = []
        job, _ = make_cc_job({1: [2], 2: [1], 3: [4], 4: [3]})
        job.add_output(output)

        values = job.run()
        self.assertEqual(values, {1: 1, 2: 1, 3: 3, 4: 3})
        self.assertEqual(sorted(output), [(1, 1), (2, 1), (3, 3), (4, 3)])
        self.assertEqual(job.superstep, 3)

    def test_isolated_vertex(self):
        job, program = make_cc_job({1: [2], 2: [1], 7: []})
        job.load()

        job.run_step()
        self.assertEqual(job.values[7], 7)
        self.assertEqual(job.vertex_states[7], "halted")

        values = job.run()
        self.assertEqual(values[7], 7)
        self.assertEqual(program.calls[7], 1)

    def test_unknown_target_aborts_with_superstep(self):
        job, _ = make_cc_job({1: [2], 2: [1, 99]})

        with self.assertRaises(RoutingError) as cm:
            job.run()

        self.assertEqual(cm.exception.superstep, 0)
        self.assertEqual(cm.exception.vertex_id, 2)
        self.assertEqual(job.status, "failed")
        self.assertEqual(job.superstep, 0)

    def test_random_graphs_match_reachability(self):
        for seed in (1, 2, 3):
            adjacency = random_symmetric_graph(40, 30, seed)
            job, _ = make_cc_job(adjacency, create_min_combiner())
            self.assertEqual(job.run(), expected_components(adjacency))

    def test_directed_graph_minimum_reachable(self):
        # Ids flow along edge direction; nothing points at 3, so it keeps its own id
        adjacency = {1: [2], 2: [1], 3: [1]}
        job, _ = make_cc_job(adjacency)
        self.assertEqual(job.run(), {1: 1, 2: 1, 3: 3})

    def test_determinism_across_partitions_and_threads(self):
        adjacency = random_symmetric_graph(60, 70, seed=11)
        expected = expected_components(adjacency)

        baseline, _ = make_cc_job(adjacency)
        baseline_values = baseline.run()
        self.assertEqual(baseline_values, expected)

        for num_partitions in (1, 3, 4):
            for parallel in (False, True):
                for combiner in (None, create_min_combiner()):
                    job, _ = make_cc_job(
                        adjacency, combiner,
                        num_partitions=num_partitions, parallel=parallel, max_workers=4
                    )
                    self.assertEqual(job.run(), baseline_values)
                    self.assertEqual(job.superstep, baseline.superstep)

    def test_combiner_reduces_volume_only(self):
        plain, _ = make_cc_job(SQUARE)
        combined, _ = make_cc_job(SQUARE, create_min_combiner())

        self.assertEqual(plain.run(), combined.run())
        self.assertEqual(plain.stats["messages_sent"], combined.stats["messages_sent"])
        self.assertLess(combined.stats["messages_delivered"], plain.stats["messages_delivered"])

    def test_termination_bound_on_path(self):
        # Path 1-2-3-4-5 has diameter 4; values are final after supersteps 0..4
        path = {1: [2], 2: [1, 3], 3: [2, 4], 4: [3, 5], 5: [4]}
        job, _ = make_cc_job(path)
        job.load()
        for _ in range(5):
            job.run_step()
        self.assertEqual(job.values, {1: 1, 2: 1, 3: 1, 4: 1, 5: 1})

        # Vertex 5 sends its final value at superstep 4; 4 absorbs it at 5
        info = job.run_step()
        self.assertEqual(info["superstep"], 5)
        self.assertEqual(info["executed_vertices"], [4])
        self.assertEqual(info["messages_sent"], 0)

        job.run()
        self.assertEqual(job.superstep, 6)
        self.assertEqual(job.stats["supersteps"], 6)

    def test_non_commutative_combiner_is_repeatable(self):
        inboxes = []

        class Collect:
            def compute(self, ctx, messages):
                if ctx["get_superstep"]() == 0:
                    ctx["send_message"](0, str(ctx["get_id"]()))
                elif messages:
                    inboxes.append(messages)
                ctx["vote_to_halt"]()

        concat = create_combiner(lambda vid, acc, msg: acc + msg, "Concat")
        for _ in range(3):
            job = GraphJob(debug=False, parallel=True, max_workers=3, num_partitions=3)
            for vertex_id in range(10):
                job.add_vertex(vertex_id)
            job.set_vertex_program(Collect)
            job.set_combiner(concat)
            job.run()

        self.assertEqual(len(inboxes), 3)
        self.assertEqual(len(inboxes[0]), 1)
        self.assertEqual(sorted(inboxes[0][0]), sorted("0123456789"))
        self.assertEqual(inboxes[0], inboxes[1])
        self.assertEqual(inboxes[1], inboxes[2])


if __name__ == '__main__':
    unittest.main()
