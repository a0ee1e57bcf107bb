"""WeChat KF API client."""

from .kf_client import KfClient, KfUrlBuilder

__all__ = ["KfClient", "KfUrlBuilder"]
