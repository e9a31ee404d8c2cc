import unittest

from parameterized import parameterized

from nodeflow.cache import (
    ExecutionCache,
    compute_config_hash,
    compute_edge_hash,
    estimate_result_size,
    hash_string,
    is_cacheable,
)
from nodeflow.models import Edge, ExecuteResult, Node, make_pulse


class TestHashing(unittest.TestCase):

    @parameterized.expand([
        ("empty", "", "ztntfp"),
        ("ascii", "a", "1r9wi7g"),
    ])
    def test_fnv1a_base36(self, name, value, expected):
        """
        FNV-1a offset basis for "" and the well-known hash of "a" (0xe40c292c).
        """
        self.assertEqual(hash_string(value), expected)

    def test_hash_is_stable_and_distinguishes_values(self):
        self.assertEqual(hash_string("hello"), hash_string("hello"))
        self.assertNotEqual(hash_string("hello"), hash_string("hellp"))
        self.assertNotEqual(hash_string("é"), hash_string("e"))

    def test_config_hash_only_uses_relevant_fields(self):
        base = Node("g", "text-generation", {"model": "m1", "userPrompt": "hi"})
        moved = Node("g", "text-generation", {"model": "m1", "userPrompt": "hi", "position": 3})
        changed = Node("g", "text-generation", {"model": "m2", "userPrompt": "hi"})
        self.assertEqual(compute_config_hash(base), compute_config_hash(moved))
        self.assertNotEqual(compute_config_hash(base), compute_config_hash(changed))

    def test_config_hash_for_custom_type_uses_all_data(self):
        self.assertNotEqual(
            compute_config_hash(Node("c", "custom", {"x": 1})),
            compute_config_hash(Node("c", "custom", {"x": 2})),
        )

    def test_edge_hash_ignores_edge_order(self):
        edges = [Edge("1", "a", "c", target_handle="x"), Edge("2", "b", "c", target_handle="y")]
        self.assertEqual(compute_edge_hash("c", edges), compute_edge_hash("c", list(reversed(edges))))
        self.assertNotEqual(compute_edge_hash("c", edges), compute_edge_hash("c", edges[:1]))

    @parameterized.expand([
        ("implicit_text", Node("n", "text-input"), True),
        ("implicit_combine", Node("n", "string-combine"), True),
        ("not_opted_in", Node("n", "text-generation"), False),
        ("opted_in", Node("n", "text-generation", {"cacheable": True}), True),
        ("never_audio", Node("n", "audio-input", {"cacheable": True}), False),
        ("never_comment", Node("n", "comment", {"cacheable": True}), False),
    ])
    def test_is_cacheable(self, name, node, expected):
        self.assertEqual(is_cacheable(node), expected)

    def test_estimate_result_size(self):
        self.assertEqual(estimate_result_size(ExecuteResult(output="")), 200)
        self.assertEqual(estimate_result_size(ExecuteResult(output="ab", reasoning="c")), 206)


class TestExecutionCache(unittest.TestCase):

    def setUp(self):
        self.cache = ExecutionCache()
        self.node = Node("gen", "text-generation", {"cacheable": True, "model": "m1"})
        self.edges = [Edge("e1", "in", "gen")]
        self.result = ExecuteResult(output="answer")

    def test_hit_after_set(self):
        self.cache.set(self.node, self.edges, {"prompt": "hi"}, self.result)
        self.assertIs(self.cache.get(self.node, self.edges, {"in": "hi"}), self.result)
        self.assertTrue(self.cache.has("gen"))
        stats = self.cache.stats()
        self.assertEqual((stats.hits, stats.misses, stats.entries), (1, 0, 1))

    @parameterized.expand([
        ("inputs_changed", None, None, {"in": "bye"}),
        ("config_changed", {"cacheable": True, "model": "m2"}, None, {"in": "hi"}),
        ("edges_changed", None, [Edge("e1", "in", "gen", target_handle="system")], {"in": "hi"}),
    ])
    def test_invalidation_reasons(self, reason, data, edges, upstream):
        self.cache.set(self.node, self.edges, {"prompt": "hi"}, self.result)
        node = Node("gen", "text-generation", data) if data else self.node
        validity = self.cache.check_validity(node, edges or self.edges, upstream)
        self.assertFalse(validity.valid)
        self.assertEqual(validity.reason, reason)
        self.assertIsNone(self.cache.get(node, edges or self.edges, upstream))

    def test_custom_default_handle(self):
        """
        Entries stored under a custom default handle validate against the same handle.
        """
        self.cache.set(self.node, self.edges, {"input": "hi"}, self.result, default_handle="input")
        self.assertIs(self.cache.get(self.node, self.edges, {"in": "hi"}, "input"), self.result)
        self.assertEqual(
            self.cache.check_validity(self.node, self.edges, {"in": "hi"}).reason,
            "edges_changed",
        )

    def test_not_found(self):
        validity = self.cache.check_validity(self.node, self.edges, {})
        self.assertEqual(validity.reason, "not_found")

    def test_pulse_inputs_are_compared_by_marker(self):
        node = Node("sw", "switch", {"cacheable": True})
        edges = [Edge("p", "gen", "sw", source_handle="done", target_handle="flip")]
        marker = make_pulse()
        self.cache.set(node, edges, {"flip": marker}, ExecuteResult(output="true"))
        self.assertIsNotNone(self.cache.get(node, edges, {"gen": "x", "gen:done": marker}))

    def test_never_cacheable_types_are_not_stored(self):
        node = Node("mic", "audio-input")
        self.cache.set(node, [], {}, ExecuteResult(output="x"))
        self.assertFalse(self.cache.has("mic"))

    def test_lru_eviction(self):
        cache = ExecutionCache(max_size_bytes=500)
        for node_id in ("a", "b"):
            cache.set(Node(node_id, "text-input"), [], {}, ExecuteResult(output="x" * 10))
        cache.get(Node("a", "text-input"), [], {})
        cache.set(Node("c", "text-input"), [], {}, ExecuteResult(output="x" * 10))

        self.assertTrue(cache.has("a"))
        self.assertFalse(cache.has("b"))
        self.assertTrue(cache.has("c"))
        self.assertEqual(cache.stats().evictions, 1)

    def test_oversized_result_is_skipped(self):
        cache = ExecutionCache(max_size_bytes=100)
        cache.set(Node("a", "text-input"), [], {}, ExecuteResult(output="x"))
        self.assertFalse(cache.has("a"))

    def test_invalidate_downstream(self):
        edges = [Edge("1", "a", "b"), Edge("2", "b", "c"), Edge("3", "x", "c")]
        for node_id in ("a", "b", "c", "x"):
            self.cache.set(Node(node_id, "text-input"), edges, {}, ExecuteResult(output=node_id))

        self.cache.invalidate_downstream("b", edges)

        self.assertTrue(self.cache.has("a"))
        self.assertTrue(self.cache.has("x"))
        self.assertFalse(self.cache.has("b"))
        self.assertFalse(self.cache.has("c"))

    def test_clear(self):
        self.cache.set(self.node, self.edges, {}, self.result)
        self.cache.clear()
        self.assertEqual(self.cache.stats().entries, 0)
        self.assertEqual(self.cache.stats().size_bytes, 0)


if __name__ == "__main__":
    unittest.main()
