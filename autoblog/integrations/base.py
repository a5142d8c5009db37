"""
Abstract collaborator interfaces used by the generation pipeline and the
scheduler. Concrete implementations live beside this module
(database_store, local_media, seo) and in services (settings_store,
cost_tracker).
"""
from abc import ABC, abstractmethod
from typing import Any, Optional


class ContentStore(ABC):
    """Where finished posts are written."""

    @abstractmethod
    async def create(
        self,
        title: str,
        body: str,
        status: str,
        author_id: Optional[int] = None,
        category_id: Optional[int] = None,
        metadata: Optional[dict] = None,
        tags: Optional[list[str]] = None,
    ) -> str:
        """Create a post. Returns its content_ref."""
        ...

    @abstractmethod
    async def update_meta(self, content_ref: str, meta: dict) -> None:
        """Merge meta keys into the post's metadata."""
        ...

    @abstractmethod
    async def set_tags(self, content_ref: str, tags: list[str]) -> None:
        ...

    @abstractmethod
    async def set_featured_image(self, content_ref: str, asset_ref: str) -> None:
        ...

    @abstractmethod
    async def delete(self, content_ref: str) -> None:
        """Remove a post. Used to roll back a half-finalized job."""
        ...

    @abstractmethod
    async def get(self, content_ref: str) -> Optional[dict]:
        """
        Fetch a post.
        Returns: {"id", "title", "body", "status", "tags", "meta", "featured_image_id"} or None
        """
        ...

    @abstractmethod
    async def recent(self, status: str = "publish", limit: int = 10) -> list[dict]:
        """Newest posts with the given status, in the same shape as get()."""
        ...


class MediaStore(ABC):
    """Where generated images are downloaded to and attached from."""

    @abstractmethod
    async def fetch_and_attach(
        self,
        url: str,
        filename: str,
        content_ref: str,
        alt_text: str = "",
    ) -> str:
        """Download url, store it as filename, link it to the post. Returns asset_ref."""
        ...


class SeoFieldWriter(ABC):
    """Writes SEO metadata in the format the active SEO plugin reads."""

    @abstractmethod
    async def apply(self, content_ref: str, seo_data: dict) -> dict:
        """
        Write meta_description / focus_keyword / seo_title.
        Returns the meta keys that were written.
        """
        ...


class SettingsProvider(ABC):
    """Typed access to user-editable application settings."""

    @abstractmethod
    async def get(self, key: str) -> Any:
        """Return the typed value, or the definition's default when unset."""
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> Any:
        """Validate, clamp and store a value. Returns the stored value."""
        ...

    @abstractmethod
    async def get_all(self) -> dict:
        ...


class CostLedger(ABC):
    """Append-only record of generation cost, read by budget gates."""

    @abstractmethod
    async def append(self, entry: dict) -> None:
        """
        Record one generation.
        entry: {"content_ref", "model_used", "prompt_tokens", "completion_tokens",
                "total_tokens", "cost_usd", "image_cost_usd", "generation_time",
                "topic_source", "status", "error_message", "job_id"}
        """
        ...

    @abstractmethod
    async def monthly_cost(self) -> float:
        ...

    @abstractmethod
    async def posts_today(self) -> int:
        ...

    @abstractmethod
    async def can_generate_today(self) -> bool:
        ...

    @abstractmethod
    async def within_budget(self) -> bool:
        ...
