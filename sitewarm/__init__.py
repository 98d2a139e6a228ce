"""Keep-alive pinging and content cache warming."""

from sitewarm.content import ContentCacheWarmer
from sitewarm.coordinator import WarmingCoordinator
from sitewarm.events import ListenerRegistry, Visibility, VisibilityMonitor
from sitewarm.models import CachedContentSnapshot, ContentItem, PingStatistics
from sitewarm.observer import WarmingObserver
from sitewarm.pinger import KeepAlivePinger

__version__ = "0.1.0"

__all__ = [
    "CachedContentSnapshot",
    "ContentCacheWarmer",
    "ContentItem",
    "KeepAlivePinger",
    "ListenerRegistry",
    "PingStatistics",
    "Visibility",
    "VisibilityMonitor",
    "WarmingCoordinator",
    "WarmingObserver",
]
