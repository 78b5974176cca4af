import unittest
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from GraphBSP.combiners import create_combiner, create_min_combiner
from GraphBSP.errors import CombinerError, ComputeError, RoutingError
from GraphBSP.graph_store import create_graph_store, create_vertex, store_add_vertex
from GraphBSP.router import create_message_router


def make_store(*vertex_ids):
    store = create_graph_store(num_partitions=2, partitioner=lambda vid, n: vid % n)
    for vertex_id in vertex_ids:
        store_add_vertex(store, create_vertex(vertex_id))
    return store


class TestMessageRouter(unittest.TestCase):

    def test_delivery_next_superstep_only(self):
        router = create_message_router(make_store(1, 2, 3))

        router["write"](1, 2, "a", 0)
        router["write"](3, 2, "b", 0)
        self.assertEqual(router["read"](2), ())
        self.assertTrue(router["has_pending"]())

        sent, delivered = router["swap"]()
        self.assertEqual((sent, delivered), (2, 2))
        self.assertEqual(router["read"](2), ("a", "b"))
        self.assertTrue(router["has_messages"](2))
        self.assertFalse(router["has_messages"](1))
        self.assertFalse(router["has_pending"]())

        # Nothing carries over into the following superstep
        router["swap"]()
        self.assertEqual(router["read"](2), ())
        self.assertFalse(router["in_flight"]())

    def test_multiset_keeps_duplicates(self):
        router = create_message_router(make_store(1, 2))
        router["flush"]([(1, 2, 5), (1, 2, 5)], 0)
        router["swap"]()
        self.assertEqual(router["read"](2), (5, 5))
        self.assertEqual(router["type"], "Multiset")

    def test_combiner_folds_to_single_entry(self):
        router = create_message_router(make_store(1, 2, 3), create_min_combiner())

        router["write"](1, 2, 5, 0)
        router["write"](3, 2, 3, 0)
        router["write"](1, 2, 7, 0)
        router["write"](2, 1, 9, 0)

        sent, delivered = router["swap"]()
        self.assertEqual((sent, delivered), (4, 2))
        self.assertEqual(router["read"](2), (3,))
        self.assertEqual(router["read"](1), (9,))

    def test_unknown_target_fails_fast(self):
        router = create_message_router(make_store(1, 2))

        with self.assertRaises(RoutingError) as cm:
            router["write"](1, 99, "x", 4)

        self.assertEqual(cm.exception.superstep, 4)
        self.assertEqual(cm.exception.vertex_id, 1)
        self.assertEqual(cm.exception.context["target"], 99)
        self.assertIn("99", str(cm.exception))

    def test_combiner_error(self):
        def broken(vertex_id, accumulated, incoming):
            raise ValueError("cannot combine")

        router = create_message_router(make_store(1, 2), create_combiner(broken))
        router["write"](1, 2, 1, 3)

        with self.assertRaises(CombinerError) as cm:
            router["write"](1, 2, 2, 3)

        self.assertIsInstance(cm.exception, ComputeError)
        self.assertEqual(cm.exception.superstep, 3)
        self.assertEqual(cm.exception.vertex_id, 2)
        self.assertIsInstance(cm.exception.__cause__, ValueError)

    def test_non_commutative_combiner_folds_in_send_order(self):
        concat = create_combiner(lambda vid, acc, msg: acc + msg, "Concat")
        router = create_message_router(make_store(1, 2), concat)

        router["flush"]([(1, 2, "a"), (1, 2, "b"), (2, 2, "c")], 0)
        router["swap"]()
        self.assertEqual(router["read"](2), ("abc",))

    def test_stats_and_clear(self):
        router = create_message_router(make_store(1, 2), create_min_combiner())
        router["flush"]([(1, 2, 4), (1, 2, 2)], 0)
        router["swap"]()
        router["flush"]([(2, 1, 1)], 1)
        router["swap"]()

        stats = router["get_stats"]()
        self.assertEqual(stats["messages_sent"], 3)
        self.assertEqual(stats["messages_delivered"], 2)
        self.assertEqual(stats["last_delivered"], 1)

        router["clear"]()
        self.assertFalse(router["in_flight"]())
        self.assertEqual(router["get_stats"]()["messages_sent"], 0)


if __name__ == '__main__':
    unittest.main()
