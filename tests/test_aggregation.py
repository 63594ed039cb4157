import random
import unittest
from unittest.mock import AsyncMock

from voicepanel.services.aggregation import (
    ScoredResponse,
    age_band,
    attitude_tier,
    benchmark_label,
    benchmark_score,
    extract_themes,
    local_themes,
    segment,
    sentiment_bucket,
    stratified_sample,
    summarize,
)


def make_response(sentiment=7, engagement=6, share=5, comprehension=8, tags=("excited",), age=28,
                  platform="TikTok", attitude=6, text=None):
    return ScoredResponse(
        response_text=text or f"reaction with sentiment {sentiment}",
        sentiment_score=sentiment,
        engagement_likelihood=engagement,
        share_likelihood=share,
        comprehension_score=comprehension,
        reaction_tags=tuple(tags),
        age=age,
        platform=platform,
        attitude_score=attitude,
    )


def bucketed(positive, neutral, negative):
    return (
        [make_response(sentiment=8 + i % 3, text=f"pos {i}") for i in range(positive)]
        + [make_response(sentiment=4 + i % 3, text=f"neu {i}") for i in range(neutral)]
        + [make_response(sentiment=1 + i % 3, text=f"neg {i}") for i in range(negative)]
    )


class TestBuckets(unittest.TestCase):
    def test_sentiment_bucket_edges(self):
        self.assertEqual(sentiment_bucket(7), "positive")
        self.assertEqual(sentiment_bucket(6), "neutral")
        self.assertEqual(sentiment_bucket(4), "neutral")
        self.assertEqual(sentiment_bucket(3), "negative")

    def test_age_band_boundaries(self):
        self.assertEqual(age_band(24), "18-24")
        self.assertEqual(age_band(25), "25-34")
        self.assertEqual(age_band(34), "25-34")
        self.assertEqual(age_band(35), "35+")
        self.assertEqual(age_band(None), "35+")

    def test_attitude_tier_defaults_missing_to_neutral(self):
        self.assertEqual(attitude_tier(7), "enthusiasts")
        self.assertEqual(attitude_tier(3), "skeptics")
        self.assertEqual(attitude_tier(5), "neutral")
        self.assertEqual(attitude_tier(None), "neutral")


class TestSummary(unittest.TestCase):
    def test_sentiment_partition_sums_to_total(self):
        responses = bucketed(5, 3, 2)
        summary = summarize(responses)
        sentiment = summary["sentiment"]
        self.assertEqual(summary["total_responses"], 10)
        self.assertEqual(sentiment["positive"] + sentiment["neutral"] + sentiment["negative"], 10)
        self.assertEqual(sentiment, {"positive": 5, "neutral": 3, "negative": 2})

    def test_averages_round_half_away_from_zero(self):
        responses = [make_response(engagement=e) for e in (1, 1, 1, 2)]
        self.assertEqual(summarize(responses)["avg_engagement"], 1.3)

    def test_empty_summary(self):
        summary = summarize([])
        self.assertEqual(summary["total_responses"], 0)
        self.assertEqual(summary["avg_comprehension"], 0.0)

    def test_segments(self):
        responses = [
            make_response(sentiment=8, engagement=6, age=22, platform="TikTok", attitude=9),
            make_response(sentiment=4, engagement=3, age=30, platform=None, attitude=2),
            make_response(sentiment=6, engagement=5, age=41, platform="TikTok", attitude=None),
        ]
        segments = segment(responses)
        self.assertEqual(set(segments["by_age"]), {"18-24", "25-34", "35+"})
        self.assertEqual(segments["by_platform"]["TikTok"], {"count": 2, "avg_sentiment": 7.0, "avg_engagement": 5.5})
        self.assertEqual(segments["by_platform"]["Other"]["count"], 1)
        self.assertEqual(segments["by_attitude"]["enthusiasts"]["count"], 1)
        self.assertEqual(segments["by_attitude"]["skeptics"]["count"], 1)
        self.assertEqual(segments["by_attitude"]["neutral"]["count"], 1)

    def test_summary_is_stable_across_calls(self):
        responses = bucketed(4, 4, 4)
        self.assertEqual(summarize(responses), summarize(list(responses)))
        self.assertEqual(segment(responses), segment(list(responses)))


class TestBenchmark(unittest.TestCase):
    def test_reference_example(self):
        summary = {
            "total_responses": 10,
            "sentiment": {"positive": 7, "neutral": 2, "negative": 1},
            "avg_engagement": 8,
            "avg_share_likelihood": 7,
            "avg_comprehension": 9,
        }
        self.assertEqual(benchmark_score(summary), 84)
        self.assertEqual(benchmark_label(84), "Excellent")

    def test_no_responses_scores_zero(self):
        self.assertEqual(benchmark_score(summarize([])), 0)

    def test_score_is_clamped(self):
        summary = {
            "sentiment": {"positive": 10, "neutral": 0, "negative": 0},
            "avg_engagement": 10, "avg_share_likelihood": 10, "avg_comprehension": 10,
        }
        self.assertEqual(benchmark_score(summary), 100)

    def test_labels(self):
        self.assertEqual(benchmark_label(80), "Excellent")
        self.assertEqual(benchmark_label(79), "Strong")
        self.assertEqual(benchmark_label(65), "Strong")
        self.assertEqual(benchmark_label(50), "Promising")
        self.assertEqual(benchmark_label(35), "Needs Work")
        self.assertEqual(benchmark_label(34), "Weak")


class TestStratifiedSample(unittest.TestCase):
    def test_skewed_population_keeps_every_bucket(self):
        responses = bucketed(60, 30, 10)
        sample = stratified_sample(responses, 40, random.Random(7))
        self.assertLessEqual(len(sample), 40)
        buckets = {sentiment_bucket(r.sentiment_score) for r in sample}
        self.assertEqual(buckets, {"positive", "neutral", "negative"})

    def test_small_population_is_returned_whole(self):
        responses = bucketed(10, 10, 10)
        self.assertEqual(stratified_sample(responses, 40), responses)

    def test_single_bucket_is_topped_up_to_threshold(self):
        responses = bucketed(90, 0, 0)
        sample = stratified_sample(responses, 40, random.Random(1))
        self.assertEqual(len(sample), 40)
        self.assertEqual(len({id(r) for r in sample}), 40)

    def test_sample_has_no_duplicates(self):
        responses = bucketed(50, 5, 45)
        sample = stratified_sample(responses, 40, random.Random(3))
        self.assertEqual(len(sample), len({id(r) for r in sample}))


class TestLocalThemes(unittest.TestCase):
    def test_tags_are_ranked_into_buckets(self):
        responses = [
            make_response(sentiment=9, tags=("excited", "would_share"), text="best thing ever"),
            make_response(sentiment=8, tags=("excited",)),
            make_response(sentiment=5, tags=("skeptical", "nostalgic")),
            make_response(sentiment=2, tags=("skeptical", "needs_more_info"), text="not for me"),
        ]
        themes = local_themes(responses)
        self.assertEqual(themes["source"], "tags")
        self.assertEqual(themes["positive_themes"][0], {"theme": "excited", "frequency": 2})
        self.assertIn({"theme": "skeptical", "frequency": 2}, themes["concerns"])
        self.assertEqual(themes["unexpected"], [{"theme": "nostalgic", "frequency": 1}])
        self.assertEqual(themes["key_quotes"][0], "best thing ever")
        self.assertEqual(themes["key_quotes"][-1], "not for me")

    def test_quotes_are_truncated(self):
        themes = local_themes([make_response(text="x" * 1000)])
        self.assertEqual(len(themes["key_quotes"][0]), 300)


class TestExtractThemes(unittest.IsolatedAsyncioTestCase):
    async def test_summarizer_failure_yields_empty_themes(self):
        summarizer = AsyncMock(side_effect=RuntimeError("provider down"))
        themes = await extract_themes(bucketed(3, 2, 1), "concept", summarizer, mode="llm")
        self.assertEqual(themes["source"], "unavailable")
        self.assertEqual(themes["positive_themes"], [])
        self.assertEqual(themes["concerns"], [])
        self.assertIn("provider down", themes["error"])

    async def test_large_population_is_sampled_and_truncated(self):
        summarizer = AsyncMock(return_value={
            "positive_themes": [{"theme": "Bold", "frequency": "3"}, {"frequency": 1}],
            "concerns": [],
            "unexpected": "not a list",
            "key_quotes": ["one", "two", "", 3],
        })
        responses = [make_response(sentiment=s, text="y" * 900) for s in ([9] * 60 + [5] * 30 + [2] * 10)]
        themes = await extract_themes(responses, "concept", summarizer, mode="llm", threshold=40, text_limit=500,
                                      rng=random.Random(2))

        sampled = summarizer.await_args.args[1]
        self.assertLessEqual(len(sampled), 40)
        self.assertTrue(all(len(item["response"]) == 500 for item in sampled))
        self.assertEqual(set(sampled[0]), {"age", "platform", "attitude", "response", "sentiment", "tags"})
        self.assertEqual(themes["source"], "llm")
        self.assertEqual(themes["positive_themes"], [{"theme": "Bold", "frequency": 3}])
        self.assertEqual(themes["unexpected"], [])
        self.assertEqual(themes["key_quotes"], ["one", "two"])
        self.assertEqual(themes["sampled_responses"], len(sampled))

    async def test_local_mode_never_calls_summarizer(self):
        summarizer = AsyncMock()
        themes = await extract_themes(bucketed(2, 2, 2), "concept", summarizer, mode="local")
        summarizer.assert_not_awaited()
        self.assertEqual(themes["source"], "tags")

    async def test_no_responses(self):
        themes = await extract_themes([], "concept", AsyncMock(), mode="llm")
        self.assertEqual(themes["source"], "none")


if __name__ == "__main__":
    unittest.main()
