"""Parse chat export text sources and merge them into conversations."""

from .config import DEFAULT_CONFIG, EngineConfig
from .media import build_media_index, resolve_media_record
from .merge import merge_conversations, normalize_conversation_key
from .processor import ParseMeta, ParseSession, parse_source, process_sources
from .sources import SourceError, TextSource, discover_sources
