"""
Prompt templates for each generation step: outline, content, humanize,
SEO metadata and featured image.

Usage:
    from autoblog.prompts.blog import outline_prompt, SYSTEM_PROMPTS
    result = await client.generate_text(outline_prompt(topic, 800, 1500), SYSTEM_PROMPTS["outline"])
"""
from typing import Optional

# Phrases that make a post read as machine-written
BANNED_PHRASES = (
    "'dive into', 'delve into', 'let's explore', 'in today's fast-paced world', "
    "'it's important to note', 'at the end of the day', 'game-changer', "
    "'leverage', 'synergy', 'unlock the power of'"
)

HUMANIZE_BANNED_PHRASES = (
    "'dive into', 'delve into', 'it's important to note', 'in today's world', "
    "'in conclusion', 'firstly/secondly/thirdly', 'game-changer', 'leverage', "
    "'unlock', 'landscape', 'tapestry'"
)

HUMANIZE_INTENSITY = {
    3: "moderate",
    4: "substantial",
    5: "extensive",
}

_BASE = (
    "You are an expert blog content writer with years of experience in creating "
    "engaging, well-researched articles. "
)

SYSTEM_PROMPTS = {
    "outline": _BASE + (
        "You excel at creating comprehensive outlines that lead to well-structured, valuable content. "
        "Your outlines are detailed enough to guide writing but flexible enough to allow creativity."
    ),
    "content": _BASE + (
        "You write in a natural, engaging style that connects with readers. "
        "Your content is informative, accurate, and easy to read. "
        "You always provide value and actionable insights. "
        "You write content that doesn't sound AI-generated - it's authentic and personable. "
        "Avoid cliches, filler phrases, and overly formal language. "
        f"IMPORTANT: Never use these phrases: {BANNED_PHRASES}."
    ),
    "humanize": (
        "You are an expert editor. Your task is to rewrite the provided HTML blog content "
        "to sound more natural and human-written. You MUST output the complete rewritten "
        "content with all HTML tags preserved. Do not ask questions or request clarification "
        "- just rewrite the content provided below."
    ),
    "seo": "You are an SEO specialist. Generate SEO metadata that is compelling and optimized.",
}


def content_system_prompt(website_context: str = "", style_prompt: str = "") -> str:
    """The content system prompt plus the site's own context and learned style, when present."""
    prompt = SYSTEM_PROMPTS["content"]
    style = "\n\n".join(part.strip() for part in (website_context, style_prompt) if part and part.strip())
    if style:
        prompt += f"\n\nWebsite Writing Style:\n{style}"
    return prompt


def outline_prompt(
    topic: str,
    word_count_min: int,
    word_count_max: int,
    keywords: Optional[str] = None,
    instructions: Optional[str] = None,
) -> str:
    prompt = (
        f"Create a detailed outline for a blog post about: {topic}\n\n"
        "Include:\n"
        "- A compelling title suggestion\n"
        "- 4-6 main sections with H2 headings\n"
        "- 2-3 key points under each section\n"
        "- A brief intro and conclusion plan\n\n"
        f"Target word count: {word_count_min}-{word_count_max} words\n"
    )
    if keywords:
        prompt += f"\nFocus keywords to include: {keywords}"
    if instructions:
        prompt += f"\n\nAdditional instructions: {instructions}"
    return prompt


def content_prompt(outline: str, word_target: int, keywords: Optional[str] = None) -> str:
    prompt = (
        f"Write a complete blog post based on this outline:\n\n{outline}\n\n"
        "Requirements:\n"
        f"- Write approximately {word_target} words\n"
        "- Use proper H2 and H3 heading hierarchy\n"
        "- Write engaging, informative content\n"
        "- Include a compelling introduction that hooks the reader\n"
        "- End with a strong conclusion or call-to-action\n"
        "- Use short paragraphs (2-4 sentences each)\n"
        "- Include bullet points or numbered lists where appropriate\n"
        "- Make it SEO-friendly but natural\n\n"
        "Format: Use HTML with <h2>, <h3>, <p>, <ul>, <li> tags. "
        "Do NOT include <h1> as the title is added automatically."
    )
    if keywords:
        prompt += f"\n\nNaturally incorporate these keywords: {keywords}"
    return prompt


def humanize_prompt(content: str, level: int) -> str:
    intensity = HUMANIZE_INTENSITY.get(level, "moderate")
    return (
        "TASK: Rewrite this blog post to sound more natural and human-written.\n\n"
        f"INTENSITY: {intensity} rewriting\n\n"
        "RULES:\n"
        "1. Output ONLY the rewritten HTML content - no explanations or questions\n"
        "2. Vary sentence structures and lengths\n"
        "3. Add conversational elements where appropriate\n"
        "4. Use more varied vocabulary\n"
        "5. Remove robotic or formulaic patterns\n"
        f"6. NEVER use: {HUMANIZE_BANNED_PHRASES}\n"
        "7. PRESERVE all HTML tags (<h2>, <h3>, <p>, <ul>, <li>, etc.)\n"
        "8. Keep approximately the same length\n\n"
        f"CONTENT TO REWRITE:\n\n{content}"
    )


def seo_prompt(topic: str, content_sample: str) -> str:
    return (
        f"Based on this blog post about '{topic}', generate:\n\n"
        "1. Meta description (150-160 characters, compelling and includes main keyword)\n"
        "2. Focus keyword (single phrase, 2-4 words)\n"
        "3. SEO title (if different from post title, 50-60 characters)\n\n"
        f"Content summary:\n{content_sample}\n\n"
        'Format your response as JSON: {"meta_description": "...", "focus_keyword": "...", "seo_title": "..."}'
    )


def image_prompt(visual_subject: str) -> str:
    return (
        f"Professional photorealistic image representing: {visual_subject}. "
        "CRITICAL REQUIREMENTS: "
        "1. ABSOLUTELY NO TEXT, words, letters, numbers, labels, captions, watermarks, "
        "or any written content in the image. "
        "2. NO signs, banners, screens, or surfaces with text. "
        "3. Style: Clean, modern, high-quality stock photo aesthetic. "
        "4. Lighting: Professional, well-lit, natural lighting. "
        "5. Composition: Rule of thirds, visually balanced, suitable as a blog header. "
        "6. Subject: Real objects, environments, or scenes that visually represent the topic. "
        "7. Quality: Sharp focus, high resolution, professional photography style. "
        "Generate a visually compelling image that tells the story through imagery alone, "
        "not through any text or words."
    )
