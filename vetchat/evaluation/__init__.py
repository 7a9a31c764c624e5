from vetchat.evaluation.analytics import AnalyticsSnapshot, AnalyticsTracker, categorize_question

__all__ = ["AnalyticsTracker", "AnalyticsSnapshot", "categorize_question"]
