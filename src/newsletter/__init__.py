"""
뉴스레터 발송 모듈
"""

from .dispatcher import NewsletterDispatcher, NewsletterIssue, DispatchReport, InvalidIssue

__all__ = [
    "NewsletterDispatcher",
    "NewsletterIssue",
    "DispatchReport",
    "InvalidIssue",
]
