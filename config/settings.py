"""
Settings Configuration
Pydantic-based configuration for the list synchronization engine.
"""
import json
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


class QuerySettings(BaseSettings):
    """SPARQL service configuration"""
    endpoint: str = Field(default="https://query.wikidata.org/sparql", description="SPARQL endpoint URL")
    max_simultaneous: int = Field(default=4, ge=1, description="Max in-flight queries, process-wide")
    timeout_sec: float = Field(default=60.0, gt=0, description="Per-attempt query timeout (seconds)")
    prefix: str = Field(default="", description="Text prepended to every query (PREFIX declarations)")
    user_agent: str = Field(default="ListSync/1.0", description="User Agent")

    class Config:
        env_prefix = "QUERY_"


class EntitySettings(BaseSettings):
    """Wikibase entity API configuration"""
    api_url: str = Field(default="https://www.wikidata.org/w/api.php", description="Wikibase api.php URL")
    max_simultaneous: int = Field(default=2, ge=1, description="Max in-flight entity fetches, process-wide")
    cache_capacity: int = Field(default=5000, ge=1, description="Max entities held in the cache")
    batch_size: int = Field(default=50, ge=1, le=50, description="Ids per wbgetentities call")
    timeout_sec: float = Field(default=30.0, gt=0, description="Per-request timeout (seconds)")

    class Config:
        env_prefix = "ENTITIES_"


class RetrySettings(BaseSettings):
    """Retry policy shared by queries, entity fetches and edits"""
    max_attempts: int = Field(default=3, ge=1, description="Total attempts, first one included")
    backoff: str = Field(default="exponential", description="Backoff curve: none, fixed, exponential")
    delay_sec: float = Field(default=1.0, ge=0, description="Base delay between attempts (seconds)")
    max_delay_sec: float = Field(default=30.0, ge=0, description="Upper bound for a single delay")

    @field_validator("backoff")
    @classmethod
    def _known_backoff(cls, value: str) -> str:
        text = str(value or "").strip().lower()
        if text not in {"none", "fixed", "exponential"}:
            raise ValueError(f"unknown backoff policy: {value}")
        return text

    class Config:
        env_prefix = "RETRY_"


class WikiSettings(BaseSettings):
    """Target wiki configuration"""
    api_url: str = Field(default="https://en.wikipedia.org/w/api.php", description="MediaWiki api.php URL")
    wiki_id: str = Field(default="enwiki", description="Site id used for sitelinks")
    oauth2_token: Optional[str] = Field(default=None, description="OAuth2 bearer token for edits")
    edit_delay_ms: int = Field(default=1000, ge=0, description="Minimum spacing between successful edits")
    edit_summary: str = Field(default="Wikidata list updated", description="Edit summary")
    excluded_namespaces: Union[str, List[int]] = Field(
        default_factory=list,
        description='Namespaces to skip, or "*" for all',
    )
    pages: List[str] = Field(default_factory=list, description="Explicit page set (empty = discover)")
    dry_run: bool = Field(default=False, description="Log edits instead of saving them")
    timeout_sec: float = Field(default=30.0, gt=0, description="Per-request timeout (seconds)")
    user_agent: str = Field(default="ListSync/1.0", description="User Agent")

    @field_validator("excluded_namespaces")
    @classmethod
    def _namespace_list(cls, value):
        if isinstance(value, str):
            text = value.strip()
            if text == "*":
                return "*"
            return [int(part) for part in text.split(",") if part.strip()]
        return [int(item) for item in value]

    class Config:
        env_prefix = "WIKI_"


class TemplateSettings(BaseSettings):
    """Markers delimiting the managed region"""
    start_marker: str = Field(default="Wikidata list", description="Start template name")
    end_marker: str = Field(default="Wikidata list end", description="End template name")

    class Config:
        env_prefix = "TEMPLATE_"


class LocationRegion(BaseModel):
    """Bounding box selecting a location template"""
    name: str
    lat_min: float
    lat_max: float
    lon_min: float
    lon_max: float

    def contains(self, lat: float, lon: float) -> bool:
        return self.lat_min <= lat <= self.lat_max and self.lon_min <= lon <= self.lon_max


class RenderSettings(BaseSettings):
    """Table rendering defaults"""
    default_language: str = Field(default="en", description="Fallback list language")
    prefer_preferred: bool = Field(default=True, description="Show only preferred statements when any exist")
    default_thumbnail_size: int = Field(default=128, ge=1, description="Image width (px)")
    shadow_images: List[str] = Field(default_factory=list, description="Files rendered as absent")
    location_templates: Dict[str, str] = Field(
        default_factory=lambda: {"default": "{{Coord|$LAT$|$LON$|display=inline}}"},
        description="Region name -> coordinate template",
    )
    regions: List[LocationRegion] = Field(default_factory=list, description="Ordered region bounding boxes")
    item_link_prefix: str = Field(default=":d:", description="Interwiki prefix for item links")
    file_namespace: str = Field(default="File", description="Local file namespace prefix")

    @field_validator("location_templates")
    @classmethod
    def _has_default(cls, value: Dict[str, str]) -> Dict[str, str]:
        if "default" not in value:
            raise ValueError("location_templates requires a 'default' entry")
        return value

    class Config:
        env_prefix = "RENDER_"


class OrchestratorSettings(BaseSettings):
    """Job scheduling"""
    max_workers: int = Field(default=4, ge=1, description="Max jobs in flight")
    cycle_interval_sec: float = Field(default=300.0, ge=0, description="Pause between continuous cycles")

    class Config:
        env_prefix = "ORCHESTRATOR_"


class LogSettings(BaseSettings):
    """Logging"""
    level: str = Field(default="INFO", description="Log level name")
    file: Optional[str] = Field(default=None, description="Log file name under logs/")
    use_rich: bool = Field(default=True, description="Rich console output")

    class Config:
        env_prefix = "LOG_"


class Settings(BaseSettings):
    """Aggregated configuration"""

    query: QuerySettings = Field(default_factory=QuerySettings)
    entities: EntitySettings = Field(default_factory=EntitySettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    wiki: WikiSettings = Field(default_factory=WikiSettings)
    template: TemplateSettings = Field(default_factory=TemplateSettings)
    render: RenderSettings = Field(default_factory=RenderSettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """Load configuration from a .env file (defaults to config/.env)"""
        if env_path is None:
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            query=QuerySettings(),
            entities=EntitySettings(),
            retry=RetrySettings(),
            wiki=WikiSettings(),
            template=TemplateSettings(),
            render=RenderSettings(),
            orchestrator=OrchestratorSettings(),
            log=LogSettings(),
        )

    @classmethod
    def load_from_json(cls, json_path: Path) -> "Settings":
        """
        Load configuration from a JSON file.

        Top-level keys match the sub-settings names (query, entities, retry,
        wiki, template, render, orchestrator, log). Missing sections fall back
        to environment values.
        """
        data = json.loads(Path(json_path).read_text(encoding="utf-8"))
        sections = {
            "query": QuerySettings,
            "entities": EntitySettings,
            "retry": RetrySettings,
            "wiki": WikiSettings,
            "template": TemplateSettings,
            "render": RenderSettings,
            "orchestrator": OrchestratorSettings,
            "log": LogSettings,
        }
        kwargs = {name: model(**dict(data.get(name) or {})) for name, model in sections.items()}
        return cls(**kwargs)


@lru_cache()
def get_settings() -> Settings:
    """Global settings singleton"""
    return Settings.load_from_env_file()

