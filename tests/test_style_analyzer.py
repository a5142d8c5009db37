"""
Tests for autoblog/services/style_analyzer.py and the style API.
"""
import pytest

from autoblog.api.style import analyze_style, get_style_profile
from autoblog.schemas.api_requests import StyleAnalyzeRequest
from autoblog.services.style_analyzer import (
    StyleAnalyzer,
    content_stats,
    structure,
    style_prompt,
    writing_style,
)
from autoblog.utils.errors import PermanentProviderError
from conftest import FakeAIClient, InMemoryContentStore, InMemorySettings, full_job_replies, text_result

CASUAL_POST = (
    "<p>You gonna love this. Your garden will look awesome!</p>\n\n"
    "<h2>Getting started</h2>\n\n"
    "<ul><li>Grab your seeds</li><li>Find a sunny spot</li></ul>\n\n"
    "<p>Ready? Want more? Keep reading, you will see how cool it is.</p>"
)

FORMAL_POST = (
    "<p>The committee reviewed the proposal. However, the findings were inconclusive.</p>\n\n"
    "<h2>Background</h2>\n\n"
    "<p>Furthermore, the data was incomplete. Consequently, a second review was scheduled.</p>\n\n"
    "<h2>Conclusion</h2>\n\n"
    "<p>Therefore, the matter remains open.</p>"
)


async def _make_store(*bodies, status="publish") -> InMemoryContentStore:
    store = InMemoryContentStore()
    for i, body in enumerate(bodies, start=1):
        await store.create(f"Post {i} about gardening", body, status)
    return store


class TestHeuristics:
    def test_casual_second_person(self):
        style = writing_style([CASUAL_POST, CASUAL_POST])
        assert style["tone"] == "casual"
        assert style["voice"] == "second_person"
        assert style["uses_questions"] is True

    def test_formal_third_person(self):
        style = writing_style([FORMAL_POST])
        assert style["tone"] == "formal"
        assert style["voice"] == "third_person"
        assert style["uses_questions"] is False

    def test_content_stats(self):
        stats = content_stats([CASUAL_POST, FORMAL_POST])
        assert stats["avg_paragraphs"] == 4
        assert stats["avg_headings"] == 2
        assert stats["min_word_count"] < stats["max_word_count"]

    def test_structure(self):
        layout = structure([CASUAL_POST, CASUAL_POST, FORMAL_POST])
        assert layout["typically_has_intro"] is True
        assert layout["uses_lists_frequently"] is True
        assert layout["typically_has_conclusion"] is True
        assert layout["common_heading_patterns"] == {"2": 2, "2-2": 1}

    def test_intro_after_block_comment(self):
        body = "<!-- wp:paragraph -->\n<p>Opening line.</p>\n<!-- /wp:paragraph -->"
        assert structure([body])["typically_has_intro"] is True

    def test_no_posts(self):
        assert structure([]) == {}
        assert content_stats([])["avg_word_count"] == 0


class TestStylePrompt:
    def test_empty_profile(self):
        assert style_prompt({}) == ""
        assert style_prompt(None) == ""

    def test_instructions_from_profile(self):
        prompt = style_prompt({
            "writing_style": {"tone": "casual", "voice": "second_person", "avg_sentence_length": 9,
                              "uses_questions": True},
            "structure": {"typically_has_intro": True, "uses_lists_frequently": False},
            "content_stats": {"avg_word_count": 1180},
        })
        assert "Write in a casual tone." in prompt
        assert 'Address the reader directly using "you".' in prompt
        assert "Use concise, punchy sentences." in prompt
        assert "Include rhetorical questions" in prompt
        assert "Start with an engaging introduction." in prompt
        assert "lists" not in prompt
        assert prompt.endswith("Target approximately 1180 words.")

    def test_long_sentences_and_guide(self):
        prompt = style_prompt({
            "writing_style": {"tone": "formal", "avg_sentence_length": 30},
            "ai_insights": {"style_guide": "Prefer measured, precise phrasing."},
        })
        assert "Use detailed, flowing sentences." in prompt
        assert prompt.endswith("Prefer measured, precise phrasing.")


class TestStyleAnalyzer:
    async def test_profile_saved_to_settings(self):
        store = await _make_store(CASUAL_POST, CASUAL_POST)
        await store.create("Draft", FORMAL_POST, "draft")
        settings = InMemorySettings()

        profile = await StyleAnalyzer(store, settings).analyze()

        assert profile["posts_analyzed"] == 2
        assert profile["writing_style"]["tone"] == "casual"
        assert "gonna" in profile["topics"]["common_keywords"]
        assert "ai_insights" not in profile
        assert await settings.get("style_profile") == profile

    async def test_no_published_posts(self):
        store = await _make_store(CASUAL_POST, status="draft")
        with pytest.raises(ValueError):
            await StyleAnalyzer(store, InMemorySettings()).analyze()

    async def test_ai_style_guide(self):
        store = await _make_store(FORMAL_POST)
        ai = FakeAIClient([text_result("Measured and precise.")])

        async def ai_factory():
            return ai

        analyzer = StyleAnalyzer(store, InMemorySettings(api_verified=True), ai_client_factory=ai_factory)
        profile = await analyzer.analyze(use_ai=True)

        assert profile["ai_insights"] == {"style_guide": "Measured and precise.", "tokens_used": 150}
        assert "Samples:" in ai.calls[0]["prompt"]
        assert "Measured and precise." in await analyzer.get_style_prompt()

    async def test_ai_failure_keeps_heuristic_profile(self):
        store = await _make_store(FORMAL_POST)
        ai = FakeAIClient([PermanentProviderError("bad request")])

        async def ai_factory():
            return ai

        analyzer = StyleAnalyzer(store, InMemorySettings(api_verified=True), ai_client_factory=ai_factory)
        profile = await analyzer.analyze(use_ai=True)

        assert "ai_insights" not in profile
        assert profile["writing_style"]["tone"] == "formal"


class TestStyleRoutes:
    async def test_analyze_and_read_back(self):
        store = await _make_store(FORMAL_POST)
        settings = InMemorySettings()

        analyzed = await analyze_style(StyleAnalyzeRequest(), analyzer=StyleAnalyzer(store, settings))
        result = await get_style_profile(settings=settings)

        assert result["data"]["profile"] == analyzed["data"]
        assert "Write in a formal tone." in result["data"]["prompt"]


class TestContentStepUsesStyle:
    async def test_style_in_content_system_prompt(self, make_pipeline):
        settings = InMemorySettings(style_profile={"writing_style": {"tone": "casual"}})
        pipeline, parts = make_pipeline(full_job_replies(), settings=settings)
        job_id = await pipeline.create_job("indoor tomatoes")

        await pipeline.process_step(job_id)
        await pipeline.process_step(job_id)

        content_call = parts["ai"].calls[1]
        assert "Website Writing Style:" in content_call["system_prompt"]
        assert "Write in a casual tone." in content_call["system_prompt"]
