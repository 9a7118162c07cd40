from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Tutorial:
    id: str
    slug: str
    title: str
    summary: str
    body: str
    maturity_level: int
    level_relation: str
    difficulty: str
    topics: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    tools_mentioned: list[str] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)
    source_urls: list[str] = field(default_factory=list)
    source_count: int = 1
    image_url: str | None = None
    audio_url: str | None = None
    is_published: bool = True
    is_hot_news: bool = False
    hot_news_headline: str | None = None
    hot_news_teaser: str | None = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)
