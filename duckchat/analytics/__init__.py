from .tracker import ChatAnalytics

__all__ = ["ChatAnalytics"]
