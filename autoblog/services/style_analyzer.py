"""
Site style analyzer - profiles the newest published posts so generated
content can match the site's voice.

analyze() reads a sample of published posts and stores a profile in the
style_profile setting: length stats, tone and voice, common keywords and
structural habits, plus an optional AI-written style guide. style_prompt()
turns a stored profile into instructions that the content step appends to
its system prompt.
"""
import logging
import re
from collections import Counter
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from autoblog.integrations.base import ContentStore, SettingsProvider
from autoblog.services.content_format import trim_words
from autoblog.utils.errors import AutoblogError

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 10
AI_SAMPLE_POSTS = 3
AI_SAMPLE_WORDS = 500
TOP_KEYWORDS = 20

FORMAL_WORDS = ("therefore", "however", "consequently", "furthermore", "moreover", "nevertheless")
INFORMAL_WORDS = ("gonna", "wanna", "kinda", "gotta", "awesome", "cool", "amazing")

STOP_WORDS = frozenset((
    "the a an and or but in on at to for of with by from as is was are were been be have has had "
    "do does did will would could should may might must shall can need dare ought used it its this "
    "that these those i you he she we they what which who when where why how all each every both few "
    "more most other some such no nor not only own same so than too very just"
).split())

VOICE_INSTRUCTIONS = {
    "first_person": "Use first person (we, our) perspective.",
    "second_person": 'Address the reader directly using "you".',
    "third_person": "Use third person perspective.",
}

STYLE_GUIDE_SYSTEM_PROMPT = (
    "You are a writing style analyst. Analyze the provided blog post samples and describe "
    "the writing style in a concise format suitable for instructing an AI to replicate this style."
)

_WORD_RE = re.compile(r"[A-Za-z][A-Za-z'-]*")
_HEADING_RE = re.compile(r"<h([1-6])[^>]*>", re.IGNORECASE)
_CONCLUSION_RE = re.compile(r"(conclusion|summary|final thoughts|in summary|to conclude)", re.IGNORECASE)
_FIRST_PERSON_RE = re.compile(r"\b(I|we|our|my|us)\b", re.IGNORECASE)
_SECOND_PERSON_RE = re.compile(r"\b(you|your|yours)\b", re.IGNORECASE)


def _plain_text(html: str) -> str:
    return " ".join(re.sub(r"<[^>]+>", " ", html or "").split())


def _word_count(text: str) -> int:
    return len(_WORD_RE.findall(text))


def _average(values: list) -> int:
    return round(sum(values) / len(values)) if values else 0


def content_stats(bodies: list[str]) -> dict:
    word_counts = [_word_count(_plain_text(body)) for body in bodies]
    paragraphs = [len([p for p in re.split(r"\n\s*\n", body) if p.strip()]) for body in bodies]
    headings = [len(_HEADING_RE.findall(body)) for body in bodies]
    return {
        "avg_word_count": _average(word_counts),
        "min_word_count": min(word_counts, default=0),
        "max_word_count": max(word_counts, default=0),
        "avg_paragraphs": _average(paragraphs),
        "avg_headings": _average(headings),
    }


def writing_style(bodies: list[str]) -> dict:
    """Sentence length, tone (formal/casual/neutral), narrative voice and punctuation habits."""
    texts = [_plain_text(body) for body in bodies]
    all_text = " ".join(texts)
    lower = all_text.lower()
    post_count = max(len(bodies), 1)

    sentence_lengths = [
        _word_count(sentence)
        for text in texts
        for sentence in re.split(r"[.!?]+", text)
        if sentence.strip()
    ]
    questions = all_text.count("?")
    exclamations = all_text.count("!")

    formal = sum(lower.count(word) for word in FORMAL_WORDS)
    informal = sum(lower.count(word) for word in INFORMAL_WORDS)
    tone = "neutral"
    if formal > informal * 2:
        tone = "formal"
    elif informal > formal * 2:
        tone = "casual"

    first = len(_FIRST_PERSON_RE.findall(all_text))
    second = len(_SECOND_PERSON_RE.findall(all_text))
    voice = "third_person"
    if first > second * 2:
        voice = "first_person"
    elif second > first:
        voice = "second_person"

    return {
        "avg_sentence_length": _average(sentence_lengths),
        "tone": tone,
        "voice": voice,
        "uses_questions": questions > post_count,
        "uses_exclamations": exclamations > post_count * 2,
        "question_frequency": round(questions / post_count, 1),
    }


def common_keywords(posts: list[dict], limit: int = TOP_KEYWORDS) -> list[str]:
    counts: Counter = Counter()
    for post in posts:
        text = _plain_text(f"{post.get('body') or ''} {post.get('title') or ''}").lower()
        counts.update(
            word for word in re.split(r"\W+", text)
            if len(word) > 3 and word not in STOP_WORDS
        )
    return [word for word, _ in counts.most_common(limit)]


def structure(bodies: list[str]) -> dict:
    total = len(bodies)
    if not total:
        return {}

    def share(pattern: str) -> float:
        return sum(1 for body in bodies if re.search(pattern, body, re.IGNORECASE | re.DOTALL)) / total

    patterns: Counter = Counter()
    for body in bodies:
        levels = _HEADING_RE.findall(body)
        if levels:
            patterns["-".join(levels)] += 1

    return {
        "typically_has_intro": share(r"^\s*(<!--.*?-->\s*)*<p>.*?</p>") > 0.5,
        "typically_has_conclusion": sum(1 for b in bodies if _CONCLUSION_RE.search(b)) / total > 0.3,
        "uses_lists_frequently": share(r"<[ou]l[^>]*>") > 0.5,
        "uses_blockquotes": share(r"<blockquote") > 0.2,
        "uses_images": share(r"<img") > 0.5,
        "common_heading_patterns": dict(patterns.most_common(3)),
    }


def style_prompt(profile: Optional[dict]) -> str:
    """Instructions for the content step, or "" when there is no profile."""
    if not profile:
        return ""

    style = profile.get("writing_style") or {}
    layout = profile.get("structure") or {}
    stats = profile.get("content_stats") or {}
    parts = []

    if style.get("tone"):
        parts.append(f"Write in a {style['tone']} tone.")
    if style.get("voice") in VOICE_INSTRUCTIONS:
        parts.append(VOICE_INSTRUCTIONS[style["voice"]])

    sentence_length = style.get("avg_sentence_length") or 0
    if sentence_length and sentence_length < 15:
        parts.append("Use concise, punchy sentences.")
    elif sentence_length > 25:
        parts.append("Use detailed, flowing sentences.")

    if style.get("uses_questions"):
        parts.append("Include rhetorical questions to engage readers.")
    if layout.get("typically_has_intro"):
        parts.append("Start with an engaging introduction.")
    if layout.get("uses_lists_frequently"):
        parts.append("Use bullet points or numbered lists where appropriate.")
    if stats.get("avg_word_count"):
        parts.append(f"Target approximately {int(stats['avg_word_count'])} words.")

    guide = (profile.get("ai_insights") or {}).get("style_guide")
    if guide:
        parts.append(f"\n{guide}")

    return " ".join(parts)


class StyleAnalyzer:
    def __init__(
        self,
        content_store: ContentStore,
        settings: SettingsProvider,
        ai_client_factory: Optional[Callable[[], Awaitable]] = None,
    ):
        self._content = content_store
        self._settings = settings
        self._ai_client_factory = ai_client_factory

    async def analyze(self, use_ai: bool = False) -> dict:
        """
        Profile the newest published posts and store the result.
        Raises ValueError when there is nothing published to analyze.
        """
        posts = await self._content.recent(status="publish", limit=SAMPLE_SIZE)
        if not posts:
            raise ValueError("No published posts found to analyze.")

        bodies = [post.get("body") or "" for post in posts]
        profile = {
            "content_stats": content_stats(bodies),
            "writing_style": writing_style(bodies),
            "topics": {"common_keywords": common_keywords(posts)},
            "structure": structure(bodies),
            "analyzed_at": datetime.now(timezone.utc).isoformat(),
            "posts_analyzed": len(posts),
        }

        if use_ai and self._ai_client_factory is not None and await self._settings.get("api_verified"):
            insights = await self._style_guide(bodies)
            if insights:
                profile["ai_insights"] = insights

        await self._settings.set("style_profile", profile)
        logger.info(
            "Style profile updated from %d posts (tone=%s voice=%s)",
            len(posts), profile["writing_style"]["tone"], profile["writing_style"]["voice"],
        )
        return profile

    async def _style_guide(self, bodies: list[str]) -> Optional[dict]:
        samples = "\n\n---\n\n".join(
            trim_words(_plain_text(body), AI_SAMPLE_WORDS) for body in bodies[:AI_SAMPLE_POSTS]
        )
        prompt = (
            "Analyze these blog post samples and provide:\n"
            "1. Overall tone (formal, casual, professional, friendly, etc.)\n"
            "2. Writing perspective (first person, second person, third person)\n"
            "3. Sentence structure preferences (short/punchy, long/detailed, varied)\n"
            "4. Common phrases or expressions used\n"
            "5. How the author engages readers\n"
            "6. Any distinctive stylistic elements\n\n"
            f"Samples:\n{samples}\n\n"
            "Provide a brief, actionable style guide (max 200 words)."
        )
        try:
            ai = await self._ai_client_factory()
            result = await ai.generate_text(
                prompt, STYLE_GUIDE_SYSTEM_PROMPT,
                model=await self._settings.get("model"), max_tokens=500, temperature=0.3,
            )
        except AutoblogError as e:
            logger.warning("AI style guide skipped: %s", e.message)
            return None
        return {"style_guide": result["content"], "tokens_used": result.get("total_tokens", 0)}

    async def get_style_prompt(self) -> str:
        return style_prompt(await self._settings.get("style_profile"))
