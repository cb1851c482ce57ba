"""
Script2Video services.

Leaf modules (time_model, format_policy) have no dependencies; the
compositor, export pipeline and history store build on the media cache,
proxy and resolver.
"""

from .compositor import ComposeResult, CompositorState, Diagnostic, TimelineCompositor
from .export import ExportPipeline
from .history_store import VideoHistoryStore, extract_thumbnail
from .media_cache import MediaCache
from .media_proxy import MediaProxy, ProxiedMedia, create_proxy_url, infer_content_type
from .media_resolver import MediaResolver, ResolvedMedia
from .pipeline import PipelineResult, ScriptVideoPipeline, build_pipeline

__all__ = [
    "TimelineCompositor",
    "CompositorState",
    "ComposeResult",
    "Diagnostic",
    "ExportPipeline",
    "VideoHistoryStore",
    "extract_thumbnail",
    "MediaCache",
    "MediaProxy",
    "ProxiedMedia",
    "create_proxy_url",
    "infer_content_type",
    "MediaResolver",
    "ResolvedMedia",
    "ScriptVideoPipeline",
    "PipelineResult",
    "build_pipeline",
]
