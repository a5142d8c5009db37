"""
Pure text helpers for turning model output into a post:
block markup conversion, title extraction, tag derivation, SEO JSON
parsing and featured-image naming.
"""
import json
import re
from typing import Optional

MIN_TITLE_LENGTH = 5
MIN_BOLD_TITLE_LENGTH = 15
MAX_TAGS = 10
MAX_STRONG_PHRASES = 5

TITLE_LABELS = (
    "title", "suggested title", "title suggestion", "blog title", "post title", "article title",
)
SECTION_LABELS = ("introduction", "conclusion", "overview", "summary", "outline", "section", "chapter")

STOP_WORDS = frozenset((
    "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "been",
    "be", "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "must", "can", "this", "that", "these", "those",
    "it", "its", "you", "your", "we", "our", "they", "their", "how", "what",
    "when", "where", "why", "which", "who", "whom",
))

_LABEL = r"(?:suggested\s+)?title(?:\s+suggestion)?"

# Ordered: first valid candidate wins
_TITLE_PATTERNS = (
    re.compile(r"\*\*" + _LABEL + r"[:\s]*\*\*[:\s]*[\"']?([^\"'\n]+)[\"']?", re.IGNORECASE),
    re.compile(_LABEL + r"[:\s]+[\"']([^\"']+)[\"']", re.IGNORECASE),
    re.compile(r"^(?:\*\*)?" + _LABEL + r"(?:\*\*)?[:\s]+(.+)$", re.IGNORECASE | re.MULTILINE),
    re.compile(_LABEL + r"[:\s]*\n+\s*\*?\*?[\"']?([^\n*\"']+)[\"']?\*?\*?", re.IGNORECASE),
)
_BOLD_PATTERN = re.compile(r"\*\*([^*\n]+)\*\*")
_HEADING_PATTERN = re.compile(r"^#\s+([^#\n]+)", re.MULTILINE)

_BLOCK_RULES = (
    ("p", "<!-- wp:paragraph -->", "<!-- /wp:paragraph -->"),
    ("h2", "<!-- wp:heading -->", "<!-- /wp:heading -->"),
    ("h3", '<!-- wp:heading {"level":3} -->', "<!-- /wp:heading -->"),
    ("h4", '<!-- wp:heading {"level":4} -->', "<!-- /wp:heading -->"),
    ("ul", "<!-- wp:list -->", "<!-- /wp:list -->"),
    ("ol", '<!-- wp:list {"ordered":true} -->', "<!-- /wp:list -->"),
    ("blockquote", "<!-- wp:quote -->", "<!-- /wp:quote -->"),
)

VISUAL_MAPPINGS = {
    # Technology
    "technology": "modern technology workspace with laptop and devices",
    "ai": "futuristic abstract digital network visualization",
    "software": "clean modern computer workspace",
    "digital": "modern digital devices showing connectivity",
    "app": "smartphone with abstract colorful interface elements",
    "coding": "developer workspace with code on multiple screens",
    "computer": "sleek modern computer setup",
    "internet": "global connectivity network visualization",
    "cyber": "digital security concept with abstract elements",
    "robot": "modern robotics and automation",
    # Business and finance
    "business": "professional modern office environment",
    "finance": "financial growth charts and professional workspace",
    "investment": "growth concept with ascending visual elements",
    "money": "financial success and prosperity concept",
    "market": "dynamic trading or marketplace environment",
    "economy": "modern cityscape representing commerce",
    "startup": "innovative modern workspace with creative energy",
    "entrepreneur": "confident professional in modern setting",
    "career": "professional advancement and success concept",
    "job": "professional workplace environment",
    # Health
    "health": "healthy lifestyle with fresh food and active living",
    "fitness": "athletic movement and exercise environment",
    "wellness": "peaceful zen environment with natural elements",
    "medical": "clean healthcare environment",
    "mental": "peaceful meditation and mindfulness scene",
    "nutrition": "colorful fresh healthy food arrangement",
    "exercise": "dynamic fitness and movement",
    "yoga": "serene yoga practice in peaceful setting",
    # Education
    "university": "impressive academic campus architecture",
    "education": "inspiring learning environment with books",
    "learning": "bright study space with educational materials",
    "school": "modern educational facility",
    "student": "young person engaged in learning",
    "course": "organized educational materials and resources",
    "training": "professional development environment",
    "skill": "hands-on learning and practice",
    # Travel and lifestyle
    "travel": "stunning scenic destination landscape",
    "food": "beautifully styled gourmet cuisine",
    "home": "cozy modern interior living space",
    "fashion": "stylish clothing and accessories arrangement",
    "garden": "lush flourishing garden landscape",
    "cooking": "inviting kitchen with fresh ingredients",
    "restaurant": "elegant dining atmosphere",
    "vacation": "relaxing paradise destination",
    # Environment
    "climate": "dramatic environmental landscape",
    "sustainable": "eco-friendly green living concept",
    "energy": "renewable energy like solar panels or wind turbines",
    "nature": "beautiful natural wilderness landscape",
    "environment": "pristine natural ecosystem",
    "green": "lush vegetation and sustainable living",
    "ocean": "stunning seascape or marine scene",
    "forest": "serene woodland environment",
    # Property
    "property": "attractive modern real estate",
    "house": "beautiful residential home exterior",
    "apartment": "stylish modern apartment interior",
    "real estate": "impressive property and architecture",
    "rent": "welcoming living space",
    # Family
    "family": "warm family togetherness moment",
    "relationship": "meaningful human connection",
    "parenting": "nurturing parent-child interaction",
    "wedding": "romantic celebration atmosphere",
    # Productivity
    "productivity": "organized efficient workspace",
    "tips": "helpful tools and resources arranged neatly",
    "guide": "clear pathway and direction concept",
    "how to": "step-by-step process visualization",
    "best": "excellence and quality concept",
    "top": "achievement and success pinnacle",
}


def strip_tags(html: str) -> str:
    return re.sub(r"<[^>]+>", "", html or "").strip()


def trim_words(text: str, limit: int) -> str:
    words = (text or "").split()
    if len(words) <= limit:
        return " ".join(words)
    return " ".join(words[:limit]) + "..."


def looks_like_markup(text: str, min_length: int = 200) -> bool:
    """True when text contains tags and is long enough to be a full article."""
    return bool(text) and "<" in text and len(text) >= min_length


def convert_to_blocks(html: str) -> str:
    """Wrap HTML elements in block-editor comment delimiters."""
    content = (html or "").strip()
    content = re.sub(r"```html?\s*", "", content)
    content = re.sub(r"```\s*", "", content)

    for tag, opener, closer in _BLOCK_RULES:
        content = re.sub(
            rf"<{tag}([^>]*)>(.*?)</{tag}>",
            lambda m, tag=tag, opener=opener, closer=closer: (
                f"{opener}\n<{tag}{m.group(1)}>{m.group(2)}</{tag}>\n{closer}\n"
            ),
            content,
            flags=re.DOTALL,
        )

    content = re.sub(r"\n{3,}", "\n\n", content)
    return content.strip()


def clean_title(title: str) -> str:
    title = re.sub(r"^\*\*|\*\*$", "", title or "")
    title = re.sub(r"^#+\s*", "", title)
    title = re.sub(r"^\*|\*$", "", title)
    title = title.strip(":*#\"'\\- ")
    title = re.sub(r"^" + _LABEL + r"[:\s]+", "", title, flags=re.IGNORECASE)
    return title.strip()


def is_valid_title(title: str, skip_words=TITLE_LABELS) -> bool:
    if not title or len(title) < MIN_TITLE_LENGTH:
        return False
    lowered = title.strip().lower()
    return not any(lowered in (word, word + ":") for word in skip_words)


def capitalize_words(text: str) -> str:
    """Lowercase, then uppercase the first letter of every word."""
    return re.sub(r"(^|\s)(\S)", lambda m: m.group(1) + m.group(2).upper(), (text or "").lower())


def extract_title(topic: str, outline: str) -> str:
    """Pick the post title out of a generated outline, falling back to the topic."""
    outline = outline or ""

    for pattern in _TITLE_PATTERNS:
        match = pattern.search(outline)
        if match:
            title = clean_title(match.group(1))
            if is_valid_title(title):
                return title

    skip_words = TITLE_LABELS + SECTION_LABELS
    for candidate in _BOLD_PATTERN.findall(outline):
        title = clean_title(candidate)
        if is_valid_title(title, skip_words) and len(title) > MIN_BOLD_TITLE_LENGTH:
            return title

    match = _HEADING_PATTERN.search(outline)
    if match:
        title = clean_title(match.group(1))
        if is_valid_title(title):
            return title

    return capitalize_words(topic)


def _unique(items):
    seen = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen


def extract_keywords_from_text(text: str) -> list[str]:
    words = re.split(r"[\s\-_:,;.!?]+", (text or "").lower())
    return _unique(w for w in words if len(w) > 3 and w not in STOP_WORDS)


def generate_tags(topic: str, keywords: Optional[str], content: str) -> list[str]:
    """Derive up to 10 lowercase tags from keywords, topic words and bold phrases."""
    tags = []
    if keywords:
        tags.extend(part.strip() for part in keywords.split(","))

    tags.extend(extract_keywords_from_text(topic))

    for phrase in re.findall(r"<strong>([^<]+)</strong>", content or "")[:MAX_STRONG_PHRASES]:
        clean = strip_tags(phrase)
        if 2 < len(clean) < 30:
            tags.append(clean)

    tags = _unique(strip_tags(tag).lower() for tag in tags)
    return [tag for tag in tags if 2 < len(tag) < 50][:MAX_TAGS]


def parse_seo_json(text: str) -> dict:
    """Extract the JSON object from a model reply. Unparseable replies yield {}."""
    if not text:
        return {}
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        text = text[start:end + 1]
    try:
        data = json.loads(text)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def extract_visual_concept(title: str) -> str:
    """Map title keywords to at most two visual concepts for the image prompt."""
    lowered = (title or "").lower()
    elements = [
        visual for keyword, visual in VISUAL_MAPPINGS.items()
        if re.search(r"\b" + re.escape(keyword), lowered)
    ]
    if elements:
        return ", combined with ".join(elements[:2])
    return f"the concept of: {title} - shown through relevant objects, environments, and visual metaphors"


def slugify(text: str, max_length: int = 80) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (text or "").lower()).strip("-")
    return slug[:max_length].rstrip("-") or "post"


def featured_image_filename(title: str, extension: str = "png") -> str:
    return f"{slugify(title)}-featured.{extension}"
