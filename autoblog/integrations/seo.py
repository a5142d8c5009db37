"""
SEO field writers - store generated SEO metadata under the meta keys the
configured SEO plugin reads (Yoast, Rank Math, AIOSEO, or our own keys).
"""
import json
import logging

from autoblog.integrations.base import ContentStore, SeoFieldWriter

logger = logging.getLogger(__name__)

SEO_META_KEYS = {
    "yoast": {
        "meta_description": "_yoast_wpseo_metadesc",
        "focus_keyword": "_yoast_wpseo_focuskw",
        "seo_title": "_yoast_wpseo_title",
    },
    "rankmath": {
        "meta_description": "rank_math_description",
        "focus_keyword": "rank_math_focus_keyword",
        "seo_title": "rank_math_title",
    },
    "aioseo": {
        "meta_description": "_aioseo_description",
        "focus_keyword": "_aioseo_keywords",
        "seo_title": "_aioseo_title",
    },
    "generic": {
        "meta_description": "_autoblog_meta_description",
        "focus_keyword": "_autoblog_focus_keyword",
        "seo_title": "_autoblog_seo_title",
    },
}

# Scores the plugins recompute themselves on next edit
_PLUGIN_DEFAULTS = {
    "yoast": {"_yoast_wpseo_content_score": 0},
    "rankmath": {"rank_math_seo_score": 0, "rank_math_robots": ["index"]},
}


def build_seo_meta(plugin: str, seo_data: dict) -> dict:
    """Translate {meta_description, focus_keyword, seo_title} into plugin meta keys."""
    keys = SEO_META_KEYS.get(plugin, SEO_META_KEYS["generic"])
    meta = {}
    for field, meta_key in keys.items():
        value = seo_data.get(field)
        if not value or not isinstance(value, str):
            continue
        value = value.strip()
        if plugin == "aioseo" and field == "focus_keyword":
            value = json.dumps({"focus": {"keyphrase": value}})
        meta[meta_key] = value
    if meta:
        meta.update(_PLUGIN_DEFAULTS.get(plugin, {}))
    return meta


class MetaSeoFieldWriter(SeoFieldWriter):
    def __init__(self, content_store: ContentStore, plugin: str = "generic"):
        self.content_store = content_store
        self.plugin = plugin if plugin in SEO_META_KEYS else "generic"

    async def apply(self, content_ref: str, seo_data: dict) -> dict:
        meta = build_seo_meta(self.plugin, seo_data or {})
        if meta:
            await self.content_store.update_meta(content_ref, meta)
            logger.info("SEO meta written (%s): %s", self.plugin, ", ".join(sorted(meta)))
        return meta
