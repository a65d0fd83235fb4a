"""
DepthScope - multi-venue order-book depth ingestion and microstructure analytics.

Architecture:
- feeds/: venue adapters, backoff policy, quality scoring and the Feed Manager
- analytics/: order-book processor, short-horizon prediction, pressure zones
- service.py: wires feeds into analytics and exposes the read-only query surface
"""

__version__ = "0.1.0"
