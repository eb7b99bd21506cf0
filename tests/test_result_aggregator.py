"""
Unit tests for ResultAggregator partial/final classification.
Fragments are fed directly; no recognizer required.
"""
import threading
import unittest

from streaming.result_aggregator import ResultAggregator


def _make_aggregator(**kwargs):
    partials, finals = [], []
    agg = ResultAggregator(on_partial=partials.append, on_final=finals.append, **kwargs)
    return agg, partials, finals


class TestResultAggregator(unittest.TestCase):
    def test_first_punctuated_fragment_is_only_final(self):
        agg, partials, finals = _make_aggregator()
        agg.on_text_fragment("你好。")
        agg.on_text_fragment("在吗？")
        agg.on_stream_complete()
        self.assertEqual(finals, ["你好。"])
        self.assertEqual(partials, ["在吗？"])
        self.assertTrue(agg.is_completed())

    def test_unpunctuated_fragments_final_at_completion(self):
        agg, partials, finals = _make_aggregator()
        agg.on_text_fragment("你")
        agg.on_text_fragment("好")
        self.assertEqual(finals, [])
        self.assertEqual(partials, ["你", "好"])
        agg.on_stream_complete()
        self.assertEqual(finals, ["你好"])

    def test_completion_dedups_full_text(self):
        agg, _, finals = _make_aggregator()
        agg.on_text_fragment("你好")
        agg.on_text_fragment("你好")
        agg.on_stream_complete()
        self.assertEqual(finals, ["你好"])

    def test_fragment_is_deduplicated(self):
        agg, partials, _ = _make_aggregator()
        agg.on_text_fragment("我我我想")
        self.assertEqual(partials, ["我想"])

    def test_deduplication_can_be_disabled(self):
        agg, partials, _ = _make_aggregator(enable_deduplication=False)
        agg.on_text_fragment("我我我想")
        self.assertEqual(partials, ["我我我想"])
        self.assertEqual(agg.get_full_text(), "我我我想")

    def test_empty_fragment_ignored(self):
        agg, partials, finals = _make_aggregator()
        agg.on_text_fragment("")
        agg.on_text_fragment("   ")
        self.assertEqual(partials, [])
        self.assertEqual(agg.get_full_text(), "")
        self.assertFalse(agg.is_completed())

    def test_completion_without_text_has_no_final(self):
        agg, _, finals = _make_aggregator()
        agg.on_stream_complete()
        self.assertEqual(finals, [])
        self.assertTrue(agg.is_completed())

    def test_error_completes_without_raising(self):
        agg, _, finals = _make_aggregator()
        agg.on_text_fragment("半句")
        agg.on_error(RuntimeError("connection reset"))
        self.assertTrue(agg.is_completed())
        self.assertEqual(finals, [])

    def test_error_reported_once_to_callback(self):
        errors = []
        agg = ResultAggregator(on_error=errors.append)
        first = RuntimeError("engine dropped")
        agg.on_error(first)
        agg.on_error(RuntimeError("again"))
        self.assertEqual(errors, [first])

    def test_no_final_after_error(self):
        agg, partials, finals = _make_aggregator()
        agg.on_text_fragment("你")
        agg.on_error(RuntimeError("engine dropped"))
        agg.on_text_fragment("好。")
        agg.on_stream_complete()
        self.assertEqual(partials, ["你"])
        self.assertEqual(finals, [])
        self.assertEqual(agg.get_full_text(), "你")

    def test_reset_clears_error(self):
        agg, _, finals = _make_aggregator()
        agg.on_error(RuntimeError("engine dropped"))
        agg.reset()
        agg.on_text_fragment("好。")
        self.assertEqual(finals, ["好。"])

    def test_mid_fragment_punctuation_counts(self):
        agg, _, finals = _make_aggregator()
        agg.on_text_fragment("大约2.5米")
        self.assertEqual(finals, ["大约2.5米"])

    def test_discard_suppresses_final(self):
        agg, _, finals = _make_aggregator()
        agg.on_text_fragment("你")
        agg.discard()
        agg.on_stream_complete()
        self.assertEqual(finals, [])

    def test_reset(self):
        agg, _, finals = _make_aggregator()
        agg.on_text_fragment("第一句。")
        agg.on_stream_complete()
        agg.reset()
        self.assertFalse(agg.is_completed())
        self.assertEqual(agg.get_full_text(), "")
        agg.on_text_fragment("第二句。")
        self.assertEqual(finals, ["第一句。", "第二句。"])

    def test_final_once_under_concurrent_delivery(self):
        agg, _, finals = _make_aggregator()
        barrier = threading.Barrier(8)

        def worker(i):
            barrier.wait()
            agg.on_text_fragment("第%d句。" % i)
            agg.on_stream_complete()

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(len(finals), 1)


if __name__ == "__main__":
    unittest.main()
